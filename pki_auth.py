"""Command line interface for the public-key challenge-response service."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from pkiauth.crypto import (
    DEFAULT_KEY_BITS,
    generate_private_key,
    load_private_key_pem,
    private_key_to_pem,
    public_key_to_base64,
    sign_challenge,
)

DEFAULT_PRIVATE_KEY = Path("private_key.pem")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    subparsers = parser.add_subparsers(dest="command", required=True)

    keygen_parser = subparsers.add_parser("keygen", help="Generate an RSA key pair for a participant")
    keygen_parser.add_argument(
        "--bits",
        type=int,
        default=DEFAULT_KEY_BITS,
        help=f"RSA modulus size in bits (default: {DEFAULT_KEY_BITS})",
    )
    keygen_parser.add_argument(
        "--private-key",
        default=str(DEFAULT_PRIVATE_KEY),
        help="Where to write the PEM private key (default: private_key.pem)",
    )

    sign_parser = subparsers.add_parser("sign", help="Sign a challenge with a private key")
    sign_parser.add_argument("private_key", help="Path to the PEM private key")
    sign_parser.add_argument(
        "challenge",
        help="Challenge exactly as issued by the server; it is signed byte for byte",
    )

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service")
    serve_parser.add_argument("--host", help="Bind address (default: from settings)")
    serve_parser.add_argument("--port", type=int, help="Bind port (default: from settings)")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    namespace = parse_args(argv if argv is not None else sys.argv[1:])

    if namespace.command == "keygen":
        if namespace.bits < 1024:
            print("Key size must be at least 1024 bits", file=sys.stderr)
            return 1
        private_key = generate_private_key(namespace.bits)
        Path(namespace.private_key).write_bytes(private_key_to_pem(private_key))
        payload = {
            "privateKey": namespace.private_key,
            "publicKeyBase64": public_key_to_base64(private_key.public_key()),
        }
        print(json.dumps(payload, indent=2))
        return 0

    if namespace.command == "sign":
        try:
            private_key = load_private_key_pem(Path(namespace.private_key).read_bytes())
        except (OSError, ValueError, TypeError) as exc:
            print(f"Cannot load private key: {exc}", file=sys.stderr)
            return 1
        payload = {
            "challenge": namespace.challenge,
            "signatureBase64": sign_challenge(private_key, namespace.challenge),
        }
        print(json.dumps(payload, indent=2))
        return 0

    if namespace.command == "serve":
        import uvicorn

        from pkiauth.config import get_settings

        settings = get_settings()
        uvicorn.run(
            "pkiauth.server:app",
            host=namespace.host or settings.host,
            port=namespace.port or settings.port,
            log_config=None,
        )
        return 0

    raise RuntimeError("Unreachable")


if __name__ == "__main__":
    raise SystemExit(main())
