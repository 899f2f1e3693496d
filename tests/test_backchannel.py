"""Tests for the token exchange and profile fetch."""

from datetime import timedelta

import httpx
import pytest

from fastapi_bluejeans.backchannel import (
    BlueJeansBackchannel,
    TokenResponse,
    create_backchannel_client,
    parse_expires_in,
)
from fastapi_bluejeans.consts import MAX_RESPONSE_CONTENT_BYTES
from fastapi_bluejeans.exceptions import BackchannelError, MissingTokenError, OAuth2Error

from tests.mocks.bluejeans_mocks import MockBlueJeansServer, create_test_options

REDIRECT_URI = "https://testserver/signin-bluejeans"


class ChunkedBody(httpx.AsyncByteStream):
    """A streamed body, far larger than the cap, that counts the chunks read."""

    CHUNK_SIZE = 1024 * 1024
    MAX_CHUNKS = 64

    def __init__(self):
        self.chunks_read = 0

    async def __aiter__(self):
        for _ in range(self.MAX_CHUNKS):
            self.chunks_read += 1
            yield b" " * self.CHUNK_SIZE


def create_backchannel(server: MockBlueJeansServer) -> BlueJeansBackchannel:
    return BlueJeansBackchannel(create_test_options(server))


class TestParseExpiresIn:
    """``expires_in`` arrives as a number or as a numeric string."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (3600, timedelta(seconds=3600)),
            ("3600", timedelta(seconds=3600)),
            (" 60 ", timedelta(seconds=60)),
            (120.0, timedelta(seconds=120)),
            (1.5, None),
            ("soon", None),
            ("", None),
            (None, None),
            (True, None),
            ({"seconds": 1}, None),
        ],
    )
    def test_parse(self, value, expected):
        assert parse_expires_in(value) == expected


class TestTokenResponse:
    """Test parsing of the token endpoint body."""

    def test_nested_scope(self):
        token = TokenResponse.from_json(
            {
                "access_token": "abc",
                "expires_in": "7200",
                "refresh_token": "r",
                "scope": {"bearerPermissions": "user_info,meeting_info", "user": 42},
            }
        )

        assert token.access_token == "abc"
        assert token.expires_in == timedelta(hours=2)
        assert token.refresh_token == "r"
        assert token.scope == ["user_info", "meeting_info"]
        assert token.user_id == "42"

    def test_flat_scope_ignored(self):
        """A plain string scope carries neither permissions nor user id."""
        token = TokenResponse.from_json({"access_token": "abc", "scope": "user_info"})

        assert token.scope == []
        assert token.user_id is None

    def test_permissions_list(self):
        token = TokenResponse.from_json(
            {"access_token": "abc", "scope": {"bearerPermissions": ["a", "b"]}}
        )

        assert token.scope == ["a", "b"]

    @pytest.mark.parametrize("payload", [{}, {"access_token": ""}, {"access_token": None}])
    def test_missing_access_token(self, payload):
        with pytest.raises(MissingTokenError):
            TokenResponse.from_json(payload)

    def test_non_object_body(self):
        with pytest.raises(BackchannelError):
            TokenResponse.from_json(["abc"])


class TestExchangeCode:
    """Test the authorization code exchange."""

    @pytest.mark.asyncio
    async def test_exchange_success(self):
        server = MockBlueJeansServer()
        backchannel = create_backchannel(server)

        token = await backchannel.exchange_code("the-code", REDIRECT_URI)
        await backchannel.close()

        assert token.access_token == "abc"
        assert token.user_id == "42"
        assert token.expires_in == timedelta(seconds=3600)
        assert server.token_calls == [
            {
                "grant_type": "authorization_code",
                "client_id": "test-client-id",
                "client_secret": "test-client-secret",
                "code": "the-code",
                "redirect_uri": REDIRECT_URI,
            }
        ]

    @pytest.mark.asyncio
    async def test_exchange_posts_json_to_token_endpoint(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"access_token": "abc"})

        options = create_test_options(backchannel_transport=httpx.MockTransport(handler))
        backchannel = BlueJeansBackchannel(options)

        await backchannel.exchange_code("c", REDIRECT_URI)

        request = seen[0]
        assert request.method == "POST"
        assert request.url.host == "api.bluejeans.com"
        assert request.url.path == "/oauth2/token"
        assert request.headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code, error_code",
        [
            (400, OAuth2Error.INVALID_GRANT.value),
            (401, OAuth2Error.SERVER_ERROR.value),
            (500, OAuth2Error.SERVER_ERROR.value),
        ],
    )
    async def test_non_success_status(self, status_code, error_code):
        server = MockBlueJeansServer(token_status=status_code)
        backchannel = create_backchannel(server)

        with pytest.raises(BackchannelError) as exc_info:
            await backchannel.exchange_code("c", REDIRECT_URI)

        assert exc_info.value.status_code == status_code
        assert exc_info.value.error_code == error_code

    @pytest.mark.asyncio
    async def test_missing_access_token(self):
        server = MockBlueJeansServer(token_body={"token_type": "bearer"})
        backchannel = create_backchannel(server)

        with pytest.raises(MissingTokenError):
            await backchannel.exchange_code("c", REDIRECT_URI)

    @pytest.mark.asyncio
    async def test_timeout(self):
        server = MockBlueJeansServer(should_timeout_token=True)
        backchannel = create_backchannel(server)

        with pytest.raises(BackchannelError, match="timed out"):
            await backchannel.exchange_code("c", REDIRECT_URI)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>")

        options = create_test_options(backchannel_transport=httpx.MockTransport(handler))

        with pytest.raises(BackchannelError, match="not valid JSON"):
            await BlueJeansBackchannel(options).exchange_code("c", REDIRECT_URI)

    @pytest.mark.asyncio
    async def test_oversized_response(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b" " * (MAX_RESPONSE_CONTENT_BYTES + 1))

        options = create_test_options(backchannel_transport=httpx.MockTransport(handler))

        with pytest.raises(BackchannelError, match="exceeds"):
            await BlueJeansBackchannel(options).exchange_code("c", REDIRECT_URI)

    @pytest.mark.asyncio
    async def test_oversized_stream_stops_reading(self):
        """A body without Content-Length is abandoned once it passes the cap."""
        body = ChunkedBody()
        options = create_test_options(
            backchannel_transport=httpx.MockTransport(
                lambda request: httpx.Response(200, stream=body)
            )
        )

        with pytest.raises(BackchannelError, match="exceeds"):
            await BlueJeansBackchannel(options).exchange_code("c", REDIRECT_URI)
        assert body.chunks_read < ChunkedBody.MAX_CHUNKS


class TestFetchProfile:
    """Profile failures never raise."""

    @pytest.mark.asyncio
    async def test_fetch_success(self):
        server = MockBlueJeansServer()
        backchannel = create_backchannel(server)

        profile = await backchannel.fetch_profile("42", "abc")

        assert profile["username"] == "alice"
        request = server.profile_calls[0]
        assert request.method == "GET"
        assert request.url.path == "/v1/user/42"
        assert request.url.params["access_token"] == "abc"

    @pytest.mark.asyncio
    async def test_path_and_token_are_escaped(self):
        server = MockBlueJeansServer()
        backchannel = create_backchannel(server)

        await backchannel.fetch_profile("a/b", "t&k=v")

        request = server.profile_calls[0]
        assert request.url.raw_path.startswith(b"/v1/user/a%2Fb?")
        assert request.url.params["access_token"] == "t&k=v"

    @pytest.mark.asyncio
    async def test_non_success_returns_none(self):
        backchannel = create_backchannel(MockBlueJeansServer(profile_status=500))

        assert await backchannel.fetch_profile("42", "abc") is None

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self):
        backchannel = create_backchannel(MockBlueJeansServer(should_timeout_profile=True))

        assert await backchannel.fetch_profile("42", "abc") is None

    @pytest.mark.asyncio
    async def test_non_object_returns_none(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=["alice"])

        options = create_test_options(backchannel_transport=httpx.MockTransport(handler))

        assert await BlueJeansBackchannel(options).fetch_profile("42", "abc") is None

    @pytest.mark.asyncio
    async def test_oversized_returns_none(self):
        body = ChunkedBody()
        options = create_test_options(
            backchannel_transport=httpx.MockTransport(
                lambda request: httpx.Response(200, stream=body)
            )
        )

        assert await BlueJeansBackchannel(options).fetch_profile("42", "abc") is None
        assert body.chunks_read < ChunkedBody.MAX_CHUNKS


class TestBackchannelClient:
    def test_client_uses_configured_timeout(self):
        options = create_test_options(backchannel_timeout=5)

        client = create_backchannel_client(options)

        assert client.timeout.read == 5
