# backend/tests/unit/test_security.py

import hmac
import hashlib
import pytest

from agrichat.services.account_guard import AccountGuard
from agrichat.services.security_service import AdvancedRateLimiter, AttemptCounter, SecurityService


class TestSecurityService:

    # --- Webhook signature tests ---
    def test_valid_signature_passes(self):
        body = b'{"entry": []}'
        signature = "sha256=" + hmac.new(b"secret", body, hashlib.sha256).hexdigest()
        assert SecurityService.verify_webhook_signature(body, signature, "secret") is True

    def test_tampered_body_or_missing_prefix_fails(self):
        body = b'{"entry": []}'
        digest = hmac.new(b"secret", body, hashlib.sha256).hexdigest()
        assert SecurityService.verify_webhook_signature(body + b" ", "sha256=" + digest, "secret") is False
        assert SecurityService.verify_webhook_signature(body, digest, "secret") is False
        assert SecurityService.verify_webhook_signature(body, "", "secret") is False

    # --- Phone and pairing tests ---
    def test_to_e164(self):
        assert SecurityService.to_e164("14735551234") == "+14735551234"
        assert SecurityService.to_e164("+1 (473) 555-1234") == "+14735551234"
        assert SecurityService.to_e164("") == ""

    def test_fingerprint_is_keyed_and_format_independent(self):
        a = SecurityService.phone_fingerprint("14735551234", secret="k" * 16)
        b = SecurityService.phone_fingerprint("+1 473 555 1234", secret="k" * 16)
        c = SecurityService.phone_fingerprint("14735551234", secret="j" * 16)
        assert a == b
        assert a != c
        assert "4735551234" not in a

    # --- OTP tests ---
    def test_generated_otp_is_six_digits(self):
        for _ in range(20):
            assert SecurityService.is_valid_otp_format(SecurityService.generate_otp())

    def test_otp_format_and_match(self):
        assert SecurityService.is_valid_otp_format(" 123456 ")
        assert not SecurityService.is_valid_otp_format("12345")
        assert not SecurityService.is_valid_otp_format("12a456")
        assert SecurityService.otp_matches("123456 ", "123456")
        assert not SecurityService.otp_matches("123456", None)
        assert not SecurityService.otp_matches("123457", "123456")

    def test_password_hash_is_bcrypt(self):
        hashed = SecurityService.hash_password("Wa!example-password")
        assert hashed.startswith("$2")


@pytest.mark.asyncio
async def test_attempt_counter_bounds_and_resets(fake_redis):
    counter = AttemptCounter(fake_redis, "wa:otp:attempts", max_attempts=3, window=600)
    results = [await counter.register("1555") for _ in range(4)]
    assert results == [True, True, True, False]
    await counter.reset("1555")
    assert await counter.register("1555") is True


@pytest.mark.asyncio
async def test_phone_rate_limit(fake_redis):
    limiter = AdvancedRateLimiter(fake_redis)
    allowed = [await limiter.check_phone_rate_limit("1555", limit=2) for _ in range(3)]
    assert allowed == [True, True, False]


class TestAccountGuard:

    @pytest.mark.asyncio
    async def test_idle_account_locks_once(self, fake_redis):
        now = {"ms": 0}
        guard = AccountGuard(fake_redis, idle_lock_days=14, clock=lambda: now["ms"])
        now["ms"] = 1_000
        await guard.touch("u1")

        now["ms"] += 13 * 24 * 60 * 60 * 1000
        assert await guard.lock_if_idle("u1") is False

        now["ms"] += 2 * 24 * 60 * 60 * 1000
        assert await guard.lock_if_idle("u1") is True
        assert await guard.is_locked("u1")
        # Already locked: no second notice.
        assert await guard.lock_if_idle("u1") is False

    @pytest.mark.asyncio
    async def test_never_active_user_is_not_locked(self, fake_redis):
        guard = AccountGuard(fake_redis)
        assert await guard.lock_if_idle("u2") is False

    @pytest.mark.asyncio
    async def test_unlock_pairs_the_number(self, fake_redis):
        guard = AccountGuard(fake_redis)
        await guard.lock("u1")
        otp = await guard.issue_unlock_otp("u1", "1555")
        assert not await guard.check_unlock_otp("u1", "000000" if otp != "000000" else "111111")
        assert await guard.check_unlock_otp("u1", otp)

        await guard.complete_unlock("u1", "1555")
        assert not await guard.is_locked("u1")
        assert await guard.is_paired("u1", "1555")
        assert not await guard.is_paired("u1", "1666")
        assert await fake_redis.get("wa:unlock:otp:u1") is None

    @pytest.mark.asyncio
    async def test_logout_marker(self, fake_redis):
        guard = AccountGuard(fake_redis)
        await guard.mark_logged_out("1555")
        assert await guard.is_logged_out("1555")
        await guard.clear_logged_out("1555")
        assert not await guard.is_logged_out("1555")
