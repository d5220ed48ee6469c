"""One-time code flow and token decoding."""

import uuid
from types import SimpleNamespace

import jwt
import pytest

from xfactor_api.core.auth import TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH, decode_token
from xfactor_api.core.errors import AuthenticationError, TooManyAttemptsError, ValidationError
from xfactor_api.services import auth_service


class FakeOtpCache:
    client = None

    def __init__(self):
        self.codes = {}

    async def store_otp(self, email, code, ttl_seconds):
        self.codes[email] = {"code": code, "attempts": 0}
        return True

    async def get_otp(self, email):
        return dict(self.codes[email]) if email in self.codes else None

    async def record_otp_failure(self, email):
        self.codes[email]["attempts"] += 1
        return self.codes[email]["attempts"]

    async def drop_otp(self, email):
        self.codes.pop(email, None)


class FakeResult:
    def __init__(self, value):
        self.value = value

    def scalar_one_or_none(self):
        return self.value


class FakeSession:
    def __init__(self, user=None):
        self.user = user

    async def execute(self, stmt):
        return FakeResult(self.user)


def account(**overrides):
    values = dict(id=uuid.uuid4(), email="noa@xfactor.test", role="learner", is_active=True)
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def otp_cache(monkeypatch):
    cache = FakeOtpCache()

    async def _get_cache():
        return cache

    monkeypatch.setattr(auth_service, "get_redis_cache", _get_cache)
    return cache


class TestSendOtp:
    @pytest.mark.asyncio
    async def test_unknown_email_gets_generic_answer(self, otp_cache):
        result = await auth_service.send_otp(FakeSession(None), email="Nobody@XFactor.test")
        assert result == {"email": "nobody@xfactor.test", "expiresIn": 10}
        assert otp_cache.codes == {}

    @pytest.mark.asyncio
    async def test_known_email_stores_code(self, otp_cache):
        result = await auth_service.send_otp(FakeSession(account()), email="noa@xfactor.test")
        code = otp_cache.codes["noa@xfactor.test"]["code"]
        assert len(code) == 6 and code.isdigit()
        assert result["expiresIn"] == 10


class TestVerifyOtp:
    @pytest.mark.asyncio
    async def test_missing_code(self, otp_cache):
        with pytest.raises(ValidationError):
            await auth_service.verify_otp(FakeSession(account()), email="noa@xfactor.test", otp="123456")

    @pytest.mark.asyncio
    async def test_wrong_code_counts_attempts_then_locks(self, otp_cache):
        otp_cache.codes["noa@xfactor.test"] = {"code": "654321", "attempts": 0}
        db = FakeSession(account())

        for attempts_left in (2, 1, 0):
            with pytest.raises(ValidationError) as excinfo:
                await auth_service.verify_otp(db, email="noa@xfactor.test", otp="000000")
            assert excinfo.value.details == {"attemptsLeft": attempts_left}

        with pytest.raises(TooManyAttemptsError):
            await auth_service.verify_otp(db, email="noa@xfactor.test", otp="654321")
        assert "noa@xfactor.test" not in otp_cache.codes

    @pytest.mark.asyncio
    async def test_non_ascii_code_counts_as_wrong(self, otp_cache):
        otp_cache.codes["noa@xfactor.test"] = {"code": "123456", "attempts": 0}

        with pytest.raises(ValidationError) as excinfo:
            await auth_service.verify_otp(FakeSession(account()), email="noa@xfactor.test", otp="١٢٣٤٥٦")
        assert excinfo.value.details == {"attemptsLeft": 2}


class TestTokens:
    def test_access_token_round_trip(self):
        user = account(role="admin")
        token = auth_service._build_token(user, TOKEN_TYPE_ACCESS, 60)
        payload = decode_token(token)
        assert payload["sub"] == str(user.id)
        assert payload["role"] == "admin"

    def test_refresh_token_rejected_as_access(self):
        token = auth_service._build_token(account(), TOKEN_TYPE_REFRESH, 60, extra_claims={"jti": "abc"})
        with pytest.raises(AuthenticationError):
            decode_token(token, expected_type=TOKEN_TYPE_ACCESS)
        assert decode_token(token, expected_type=TOKEN_TYPE_REFRESH)["jti"] == "abc"

    def test_expired_and_forged_tokens(self):
        expired = auth_service._build_token(account(), TOKEN_TYPE_ACCESS, -120)
        with pytest.raises(AuthenticationError, match="expired"):
            decode_token(expired)
        forged = jwt.encode({"sub": str(uuid.uuid4()), "typ": "access"}, "x" * 32, algorithm="HS256")
        with pytest.raises(AuthenticationError):
            decode_token(forged)

    def test_password_hashing(self):
        hashed = auth_service.hash_password("correct horse")
        assert auth_service.verify_password("correct horse", hashed)
        assert not auth_service.verify_password("wrong", hashed)
        assert not auth_service.verify_password("anything", None)


class TestRoleGuard:
    @pytest.mark.asyncio
    async def test_require_roles(self):
        from xfactor_api.core.auth import require_roles
        from xfactor_api.core.errors import AuthorizationError

        guard = require_roles("support", "admin")
        assert (await guard(user={"role": "admin"}))["role"] == "admin"
        with pytest.raises(AuthorizationError):
            await guard(user={"role": "learner"})
