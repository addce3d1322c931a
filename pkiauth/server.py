"""FastAPI-powered public-key challenge-response service."""

from __future__ import annotations

from typing import Optional, Union

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

from .auth import PkiAuthService
from .config import Settings, get_settings
from .logging import setup_logging

HEALTH_TEXT = "PKI Node Server OK"

logger = structlog.get_logger(__name__)

# Clients are loose about types; numbers are accepted and coerced to text.
Scalar = Optional[Union[str, int, float]]


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Scalar = None
    name: Scalar = None
    public_key_base64: Scalar = Field(default=None, alias="publicKeyBase64")


class RegisterResponse(BaseModel):
    ok: bool
    count: int | None = None
    error: str | None = None


class ChallengeResponse(BaseModel):
    ok: bool
    id: str | None = None
    challenge: str | None = None
    ttlSeconds: int | None = None
    error: str | None = None


class VerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Scalar = None
    challenge: Scalar = None
    signature_base64: Scalar = Field(default=None, alias="signatureBase64")


class VerifyResponse(BaseModel):
    ok: bool
    error: str | None = None


def create_app(settings: Settings | None = None, service: PkiAuthService | None = None) -> FastAPI:
    """Create the FastAPI application around a single in-process service."""
    settings = settings or get_settings()
    setup_logging(log_level=settings.log_level, json_output=settings.json_logs)

    if service is None:
        service = PkiAuthService(challenge_ttl=settings.challenge_ttl_seconds)

    app = FastAPI(title="PKIAuth", description="Public-key challenge-response authentication")
    app.state.service = service
    app.state.settings = settings

    @app.middleware("http")
    async def limit_body_size(request: Request, call_next):
        length = request.headers.get("content-length")
        if length is not None and length.isdigit() and int(length) > settings.max_body_bytes:
            logger.warning("request_too_large", path=request.url.path, content_length=int(length))
            return JSONResponse(status_code=413, content={"ok": False, "error": "request body too large"})
        return await call_next(request)

    @app.get("/", response_class=PlainTextResponse)
    async def health() -> str:
        return HEALTH_TEXT

    @app.post("/register", response_model=RegisterResponse, response_model_exclude_none=True)
    async def register(request: RegisterRequest | None = None) -> dict:
        request = request or RegisterRequest()
        return service.register(request.id, request.name, request.public_key_base64)

    @app.get("/challenge", response_model=ChallengeResponse, response_model_exclude_none=True)
    async def challenge(id: str = "") -> dict:
        return service.issue_challenge(id)

    @app.post("/verify", response_model=VerifyResponse, response_model_exclude_none=True)
    async def verify(request: VerifyRequest | None = None) -> dict:
        request = request or VerifyRequest()
        return service.verify(request.id, request.challenge, request.signature_base64)

    return app


app = create_app()


__all__ = ["app", "create_app"]
