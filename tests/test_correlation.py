"""Tests for correlation (CSRF) protection."""

import time

import pytest
from starlette.responses import Response

from fastapi_bluejeans.correlation import (
    CorrelationRecord,
    CorrelationValidator,
    MemoryCorrelationStore,
)
from fastapi_bluejeans.state import AuthorizationRequestState

from tests.mocks.bluejeans_mocks import make_request

COOKIE_NAME = ".bluejeans.correlation.BlueJeans"


@pytest.fixture
def validator() -> CorrelationValidator:
    return CorrelationValidator(cookie_name=COOKIE_NAME)


class TestCorrelationRecord:
    def test_expiry_computed_from_ttl(self):
        record = CorrelationRecord(token="t", ttl_seconds=10)

        assert record.expires_at == pytest.approx(record.created_at + 10)
        assert not record.is_expired()

    def test_expired(self):
        record = CorrelationRecord(token="t", created_at=time.time() - 100, ttl_seconds=10)

        assert record.is_expired()


class TestMemoryCorrelationStore:
    @pytest.mark.asyncio
    async def test_consume_is_single_use(self):
        store = MemoryCorrelationStore()
        await store.store(CorrelationRecord(token="t"))

        assert (await store.consume("t")) is not None
        assert (await store.consume("t")) is None

    @pytest.mark.asyncio
    async def test_cleanup_expired(self):
        store = MemoryCorrelationStore()
        await store.store(CorrelationRecord(token="old", created_at=time.time() - 100, ttl_seconds=1))
        await store.store(CorrelationRecord(token="new"))

        assert await store.cleanup_expired() == 1
        assert list(store.records) == ["new"]


@pytest.fixture
def stored_validator() -> CorrelationValidator:
    return CorrelationValidator(cookie_name=COOKIE_NAME, store=MemoryCorrelationStore())


class TestCorrelationValidator:
    """Test issuing and validating the correlation nonce."""

    @pytest.mark.asyncio
    async def test_issue_sets_state_token(self, validator):
        state = AuthorizationRequestState()

        token = await validator.issue(state)

        assert state.correlation_token == token
        assert len(token) >= 32
        assert state.issued_at == pytest.approx(time.time(), abs=2)
        assert validator.store is None

    @pytest.mark.asyncio
    async def test_tokens_are_unique(self, validator):
        tokens = {await validator.issue(AuthorizationRequestState()) for _ in range(50)}

        assert len(tokens) == 50

    @pytest.mark.asyncio
    async def test_validate_success(self, validator):
        state = AuthorizationRequestState()
        token = await validator.issue(state)
        request = make_request(cookies={COOKIE_NAME: token})

        assert await validator.validate(request, state) is True
        assert state.correlation_token is None

    @pytest.mark.asyncio
    async def test_fresh_validator_accepts_issued_token(self, validator):
        """Another worker, sharing nothing but configuration, validates the callback."""
        state = AuthorizationRequestState()
        token = await validator.issue(state)
        other_worker = CorrelationValidator(cookie_name=COOKIE_NAME)

        assert await other_worker.validate(make_request(cookies={COOKIE_NAME: token}), state) is True

    @pytest.mark.asyncio
    async def test_validate_consumes_state_token(self, validator):
        state = AuthorizationRequestState()
        token = await validator.issue(state)
        request = make_request(cookies={COOKIE_NAME: token})

        assert await validator.validate(request, state) is True
        assert await validator.validate(request, state) is False

    @pytest.mark.asyncio
    async def test_missing_cookie(self, validator):
        state = AuthorizationRequestState()
        await validator.issue(state)

        assert await validator.validate(make_request(), state) is False

    @pytest.mark.asyncio
    async def test_mismatched_cookie(self, validator):
        state = AuthorizationRequestState()
        await validator.issue(state)
        request = make_request(cookies={COOKIE_NAME: "someone-elses-token"})

        assert await validator.validate(request, state) is False

    @pytest.mark.asyncio
    async def test_missing_state_token(self, validator):
        request = make_request(cookies={COOKIE_NAME: "token"})

        assert await validator.validate(request, AuthorizationRequestState()) is False

    @pytest.mark.asyncio
    async def test_missing_issue_time(self, validator):
        state = AuthorizationRequestState(correlation_token="token")
        request = make_request(cookies={COOKIE_NAME: "token"})

        assert await validator.validate(request, state) is False

    @pytest.mark.asyncio
    async def test_expired_token(self):
        validator = CorrelationValidator(cookie_name=COOKIE_NAME, ttl_seconds=60)
        state = AuthorizationRequestState()
        token = await validator.issue(state)
        state.issued_at -= 61
        request = make_request(cookies={COOKIE_NAME: token})

        assert await validator.validate(request, state) is False


class TestCorrelationValidatorWithStore:
    """Test the optional server-side record of issued nonces."""

    @pytest.mark.asyncio
    async def test_issue_records_token(self, stored_validator):
        token = await stored_validator.issue(AuthorizationRequestState())

        assert token in stored_validator.store.records

    @pytest.mark.asyncio
    async def test_validate_is_single_use(self, stored_validator):
        """A replayed state is rejected even with the right cookie."""
        state = AuthorizationRequestState()
        token = await stored_validator.issue(state)
        replay = AuthorizationRequestState(correlation_token=token, issued_at=state.issued_at)
        request = make_request(cookies={COOKIE_NAME: token})

        assert await stored_validator.validate(request, state) is True
        assert stored_validator.store.records == {}
        assert await stored_validator.validate(request, replay) is False

    @pytest.mark.asyncio
    async def test_unknown_token(self, stored_validator):
        """A matching cookie and state are not enough without the issued record."""
        state = AuthorizationRequestState(correlation_token="forged", issued_at=int(time.time()))
        request = make_request(cookies={COOKIE_NAME: "forged"})

        assert await stored_validator.validate(request, state) is False

    @pytest.mark.asyncio
    async def test_expired_record(self, stored_validator):
        state = AuthorizationRequestState()
        token = await stored_validator.issue(state)
        stored_validator.store.records[token].expires_at = time.time() - 1
        request = make_request(cookies={COOKIE_NAME: token})

        assert await stored_validator.validate(request, state) is False

    @pytest.mark.asyncio
    async def test_expired_records_purged_on_validate(self, stored_validator):
        await stored_validator.store.store(
            CorrelationRecord(token="old", created_at=time.time() - 100, ttl_seconds=1)
        )
        stored_validator._last_cleanup = 0
        state = AuthorizationRequestState(correlation_token="t", issued_at=int(time.time()))

        await stored_validator.validate(make_request(), state)

        assert "old" not in stored_validator.store.records


class TestCorrelationCookie:
    """Test the attributes of the correlation cookie."""

    def test_set_cookie_attributes(self, validator):
        response = Response()

        validator.set_cookie(response, "token", request=make_request(scheme="https"))

        header = response.headers["set-cookie"]
        assert header.startswith(f"{COOKIE_NAME}=token")
        assert "HttpOnly" in header
        assert "Secure" in header
        assert "samesite=lax" in header.lower()
        assert "Max-Age=900" in header

    def test_plain_http_cookie_not_secure(self, validator):
        response = Response()

        validator.set_cookie(response, "token", request=make_request(scheme="http"))

        assert "Secure" not in response.headers["set-cookie"]

    @pytest.mark.parametrize("scheme", ["http", "https"])
    def test_configured_secure_flag_wins(self, scheme):
        validator = CorrelationValidator(cookie_name=COOKIE_NAME, cookie_secure=True)
        response = Response()

        validator.set_cookie(response, "token", request=make_request(scheme=scheme))

        assert "Secure" in response.headers["set-cookie"]

    def test_secure_without_request(self, validator):
        assert validator.is_secure() is True

    def test_delete_cookie(self, validator):
        response = Response()

        validator.delete_cookie(response, request=make_request(scheme="http"))

        header = response.headers["set-cookie"]
        assert header.startswith(f"{COOKIE_NAME}=")
        assert "Max-Age=0" in header
        assert "Secure" not in header
