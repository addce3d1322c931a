import threading
import time
import unittest
from unittest import mock

from pkiauth import crypto
from pkiauth.auth import PkiAuthService, issue_challenge, register, verify
from pkiauth.crypto import generate_private_key, public_key_to_base64, sign_challenge
from pkiauth.store import ChallengeStore


class FakeClock:
    def __init__(self, now: float = 5_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class AuthTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.private_key = generate_private_key()
        cls.public_key_b64 = public_key_to_base64(cls.private_key.public_key())
        cls.other_key = generate_private_key()

    def setUp(self) -> None:
        self.clock = FakeClock()
        self.service = PkiAuthService(challenges=ChallengeStore(clock=self.clock))

    def _registered_challenge(self, participant_id: str = "u1") -> str:
        self.assertTrue(register(self.service, participant_id, "User", self.public_key_b64)["ok"])
        return issue_challenge(self.service, participant_id)["challenge"]


class TestRegisterAndIssue(AuthTestCase):
    def test_register_result(self) -> None:
        self.assertEqual(register(self.service, "u1", "Alice", self.public_key_b64), {"ok": True, "count": 1})
        self.assertEqual(register(self.service, "u2", "Bob", self.public_key_b64), {"ok": True, "count": 2})

    def test_register_missing_fields(self) -> None:
        self.assertEqual(
            register(self.service, "u1", "", self.public_key_b64),
            {"ok": False, "error": "missing fields"},
        )

    def test_issue_result(self) -> None:
        result = issue_challenge(self.service, "  u1 ")
        self.assertTrue(result["ok"])
        self.assertEqual(result["id"], "u1")
        self.assertEqual(result["ttlSeconds"], 300)
        self.assertIsInstance(result["challenge"], str)
        self.assertTrue(result["challenge"])

    def test_issue_missing_id(self) -> None:
        self.assertEqual(issue_challenge(self.service, "   "), {"ok": False, "error": "missing id"})
        self.assertEqual(issue_challenge(self.service, None), {"ok": False, "error": "missing id"})


class TestVerify(AuthTestCase):
    def test_successful_verification_then_replay(self) -> None:
        token = self._registered_challenge()
        signature = sign_challenge(self.private_key, token)

        self.assertEqual(verify(self.service, "u1", token, signature), {"ok": True})
        self.assertEqual(
            verify(self.service, "u1", token, signature),
            {"ok": False, "error": "challenge expired or missing"},
        )

    def test_missing_fields(self) -> None:
        for args in (("", "c", "s"), ("u1", "", "s"), ("u1", "c", "   "), (None, None, None)):
            self.assertEqual(verify(self.service, *args), {"ok": False, "error": "missing fields"})

    def test_unknown_user(self) -> None:
        self.assertEqual(
            verify(self.service, "nobody", "token", "c2ln"),
            {"ok": False, "error": "unknown user"},
        )

    def test_unknown_user_does_not_consume_challenge(self) -> None:
        issued = issue_challenge(self.service, "ghost")
        self.assertTrue(issued["ok"])
        result = verify(self.service, "ghost", issued["challenge"], "c2lnbmF0dXJl")
        self.assertEqual(result, {"ok": False, "error": "unknown user"})
        self.assertEqual(self.service.challenges.peek("ghost"), issued["challenge"])

    def test_never_issued(self) -> None:
        register(self.service, "u1", "User", self.public_key_b64)
        self.assertEqual(
            verify(self.service, "u1", "token", "c2ln"),
            {"ok": False, "error": "challenge expired or missing"},
        )

    def test_expired_challenge_is_rejected_and_purged(self) -> None:
        token = self._registered_challenge()
        self.clock.now += 301
        signature = sign_challenge(self.private_key, token)
        self.assertEqual(
            verify(self.service, "u1", token, signature),
            {"ok": False, "error": "challenge expired or missing"},
        )
        self.assertIsNone(self.service.challenges.peek("u1"))

    def test_zero_ttl_challenge_is_rejected(self) -> None:
        register(self.service, "u1", "User", self.public_key_b64)
        token = issue_challenge(self.service, "u1", ttl_seconds=0)["challenge"]
        result = verify(self.service, "u1", token, sign_challenge(self.private_key, token))
        self.assertEqual(result, {"ok": False, "error": "challenge expired or missing"})
        self.assertNotIn("u1", self.service.challenges)

    def test_reissue_invalidates_first_challenge(self) -> None:
        first = self._registered_challenge()
        second = issue_challenge(self.service, "u1")["challenge"]
        result = verify(self.service, "u1", first, sign_challenge(self.private_key, first))
        self.assertEqual(result, {"ok": False, "error": "challenge mismatch"})
        self.assertEqual(verify(self.service, "u1", second, sign_challenge(self.private_key, second)), {"ok": True})

    def test_trailing_whitespace_is_a_mismatch(self) -> None:
        token = self._registered_challenge()
        result = verify(self.service, "u1", token + " ", sign_challenge(self.private_key, token + " "))
        self.assertEqual(result, {"ok": False, "error": "challenge mismatch"})

    def test_case_change_is_a_mismatch(self) -> None:
        token = self._registered_challenge()
        altered = token.upper() if token != token.upper() else token.lower()
        result = verify(self.service, "u1", altered, sign_challenge(self.private_key, altered))
        self.assertEqual(result, {"ok": False, "error": "challenge mismatch"})

    def test_mismatch_skips_crypto_and_keeps_challenge(self) -> None:
        token = self._registered_challenge()
        with mock.patch("pkiauth.auth.verify_signature") as verifier:
            result = verify(self.service, "u1", "not-the-token", "c2ln")
        verifier.assert_not_called()
        self.assertEqual(result, {"ok": False, "error": "challenge mismatch"})
        self.assertEqual(self.service.challenges.peek("u1"), token)

    def test_wrong_key_signature_fails_and_consumes(self) -> None:
        token = self._registered_challenge()
        result = verify(self.service, "u1", token, sign_challenge(self.other_key, token))
        self.assertEqual(result, {"ok": False})
        self.assertIsNone(self.service.challenges.peek("u1"))

    def test_malformed_signature_fails_and_consumes(self) -> None:
        token = self._registered_challenge()
        self.assertEqual(verify(self.service, "u1", token, "abc"), {"ok": False})
        self.assertIsNone(self.service.challenges.peek("u1"))

    def test_unpadded_signature_is_accepted(self) -> None:
        token = self._registered_challenge()
        signature = sign_challenge(self.private_key, token).rstrip("=")
        self.assertEqual(verify(self.service, "u1", token, signature), {"ok": True})

    def test_malformed_registered_key_reports_error_and_consumes(self) -> None:
        register(self.service, "u1", "User", "bm90IGEga2V5")
        token = issue_challenge(self.service, "u1")["challenge"]
        result = verify(self.service, "u1", token, sign_challenge(self.private_key, token))
        self.assertFalse(result["ok"])
        self.assertIn("public key", result["error"])
        self.assertIsNone(self.service.challenges.peek("u1"))

    def test_unexpected_verifier_failure_is_contained(self) -> None:
        token = self._registered_challenge()
        with mock.patch("pkiauth.auth.verify_signature", side_effect=RuntimeError("boom")):
            result = verify(self.service, "u1", token, "c2ln")
        self.assertEqual(result, {"ok": False, "error": "boom"})
        self.assertIsNone(self.service.challenges.peek("u1"))

    def test_reregistration_revokes_old_key(self) -> None:
        token = self._registered_challenge()
        register(self.service, "u1", "User", public_key_to_base64(self.other_key.public_key()))
        self.assertEqual(verify(self.service, "u1", token, sign_challenge(self.private_key, token)), {"ok": False})

        token = issue_challenge(self.service, "u1")["challenge"]
        self.assertEqual(verify(self.service, "u1", token, sign_challenge(self.other_key, token)), {"ok": True})

    def test_id_and_signature_are_trimmed(self) -> None:
        token = self._registered_challenge()
        signature = sign_challenge(self.private_key, token)
        self.assertEqual(verify(self.service, " u1\n", token, f"  {signature}\n"), {"ok": True})


class TestOverlappingVerification(AuthTestCase):
    def test_same_challenge_cannot_authenticate_twice_concurrently(self) -> None:
        token = self._registered_challenge()
        signature = sign_challenge(self.private_key, token)
        start = threading.Barrier(2)
        results = []
        lock = threading.Lock()

        def slow_verify(*args):
            time.sleep(0.05)
            return crypto.verify_signature(*args)

        def worker() -> None:
            start.wait(timeout=5)
            result = verify(self.service, "u1", token, signature)
            with lock:
                results.append(result)

        with mock.patch("pkiauth.auth.verify_signature", side_effect=slow_verify):
            threads = [threading.Thread(target=worker) for _ in range(2)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join(timeout=10)

        self.assertEqual(len(results), 2)
        self.assertEqual(sum(1 for result in results if result == {"ok": True}), 1)
        self.assertIn({"ok": False, "error": "challenge expired or missing"}, results)

    def test_replay_during_signature_check_is_rejected(self) -> None:
        token = self._registered_challenge()
        signature = sign_challenge(self.private_key, token)
        nested = []

        def verify_with_replay(*args):
            nested.append(verify(self.service, "u1", token, signature))
            return crypto.verify_signature(*args)

        with mock.patch("pkiauth.auth.verify_signature", side_effect=verify_with_replay):
            outer = verify(self.service, "u1", token, signature)

        self.assertEqual(outer, {"ok": True})
        self.assertEqual(nested, [{"ok": False, "error": "challenge expired or missing"}])

    def test_challenge_reissued_during_signature_check_survives(self) -> None:
        token = self._registered_challenge()
        signature = sign_challenge(self.private_key, token)
        reissued = []

        def verify_with_reissue(*args):
            reissued.append(issue_challenge(self.service, "u1")["challenge"])
            return crypto.verify_signature(*args)

        with mock.patch("pkiauth.auth.verify_signature", side_effect=verify_with_reissue):
            self.assertEqual(verify(self.service, "u1", token, signature), {"ok": True})

        self.assertEqual(self.service.challenges.peek("u1"), reissued[0])
        fresh = reissued[0]
        self.assertEqual(verify(self.service, "u1", fresh, sign_challenge(self.private_key, fresh)), {"ok": True})


if __name__ == "__main__":
    unittest.main()
