"""
Tests for token handling.
"""
import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from cbtc_sdk.auth import KeycloakAuth, LoginCredentials, StaticToken, TokenManager, extract_subject, token_url
from cbtc_sdk.errors import AuthError, MalformedTokenError
from cbtc_sdk.models.auth import Credential

from fakes import b64url, make_jwt

HEADER = b64url(json.dumps({"alg": "RS256", "typ": "JWT"}).encode())
SIGNATURE = b64url(b"signature")

TOKEN_URL = token_url("http://keycloak:8082/", "canton")


def token_body(subject="user-1", expires_in=300, refresh_token="refresh-1"):
    body = {"access_token": make_jwt(subject), "expires_in": expires_in, "token_type": "Bearer"}
    if refresh_token:
        body["refresh_token"] = refresh_token
    return body


class TestExtractSubject:
    """Tests for extract_subject."""

    def test_reads_sub_claim(self):
        assert extract_subject(make_jwt("abc-123")) == "abc-123"

    def test_two_segments_is_malformed(self):
        with pytest.raises(MalformedTokenError):
            extract_subject("header.payload")

    def test_non_json_payload_is_malformed(self):
        payload = b64url(b"not json at all")
        with pytest.raises(MalformedTokenError):
            extract_subject(f"{HEADER}.{payload}.{SIGNATURE}")

    def test_header_must_be_json(self):
        payload = b64url(json.dumps({"sub": "abc-123"}).encode())
        with pytest.raises(MalformedTokenError):
            extract_subject(f"header.{payload}.{SIGNATURE}")

    def test_empty_sub_is_malformed(self):
        with pytest.raises(MalformedTokenError):
            extract_subject(make_jwt(""))

    def test_expired_token_still_yields_subject(self):
        assert extract_subject(make_jwt("abc-123", exp=1)) == "abc-123"

    def test_missing_sub_is_malformed(self):
        payload = b64url(json.dumps({"iss": "keycloak"}).encode())
        with pytest.raises(MalformedTokenError):
            extract_subject(f"{HEADER}.{payload}.{SIGNATURE}")

    def test_token_url(self):
        assert TOKEN_URL == "http://keycloak:8082/auth/realms/canton/protocol/openid-connect/token"


class TestKeycloakAuth:
    """Tests for the Keycloak grants."""

    @pytest.mark.asyncio
    async def test_password_login(self, httpx_mock):
        httpx_mock.add_response(url=TOKEN_URL, method="POST", json=token_body("alice-sub"))

        async with httpx.AsyncClient() as http:
            auth = KeycloakAuth(TOKEN_URL, "cbtc-client", http)
            credential = await auth.authenticate(LoginCredentials(username="alice", password="pw"))

        assert credential.subject == "alice-sub"
        assert credential.refresh_token == "refresh-1"
        assert credential.authorization.startswith("Bearer ")
        form = httpx_mock.requests[0].data
        assert form == {"grant_type": "password", "client_id": "cbtc-client", "username": "alice", "password": "pw"}

    @pytest.mark.asyncio
    async def test_client_credentials_when_secret_given(self, httpx_mock):
        httpx_mock.add_response(url=TOKEN_URL, method="POST", json=token_body(refresh_token=None))

        async with httpx.AsyncClient() as http:
            auth = KeycloakAuth(TOKEN_URL, "cbtc-client", http)
            credential = await auth.authenticate(LoginCredentials(client_secret="s3cret"))

        assert credential.refresh_token is None
        assert httpx_mock.requests[0].data["grant_type"] == "client_credentials"
        assert httpx_mock.requests[0].data["client_secret"] == "s3cret"

    @pytest.mark.asyncio
    async def test_rejected_login_raises_auth_error(self, httpx_mock):
        httpx_mock.add_response(
            url=TOKEN_URL,
            method="POST",
            status_code=401,
            json={"error": "invalid_grant", "error_description": "Invalid user credentials"},
        )

        async with httpx.AsyncClient() as http:
            auth = KeycloakAuth(TOKEN_URL, "cbtc-client", http)
            with pytest.raises(AuthError) as exc_info:
                await auth.password_login("alice", "wrong")

        assert exc_info.value.status_code == 401
        assert "Invalid user credentials" in exc_info.value.message
        assert "wrong" not in str(exc_info.value.to_dict())

    @pytest.mark.asyncio
    async def test_unreachable_token_service_raises_auth_error(self, httpx_mock):
        httpx_mock.add_exception(httpx.ConnectError("connection refused"), url=TOKEN_URL, method="POST")

        async with httpx.AsyncClient() as http:
            auth = KeycloakAuth(TOKEN_URL, "cbtc-client", http)
            with pytest.raises(AuthError):
                await auth.password_login("alice", "pw")

    @pytest.mark.asyncio
    async def test_refresh_without_token_raises(self, httpx_mock):
        credential = Credential(
            access_token=make_jwt(),
            expires_at=datetime.now(timezone.utc),
            subject="user-1",
        )
        async with httpx.AsyncClient() as http:
            auth = KeycloakAuth(TOKEN_URL, "cbtc-client", http)
            with pytest.raises(AuthError):
                await auth.refresh(credential)

        assert httpx_mock.requests == []


class TestTokenManager:
    """Tests for TokenManager renewal."""

    @pytest.mark.asyncio
    async def test_reuses_valid_credential(self, httpx_mock):
        httpx_mock.add_response(url=TOKEN_URL, method="POST", json=token_body())

        async with httpx.AsyncClient() as http:
            manager = TokenManager(KeycloakAuth(TOKEN_URL, "c", http), LoginCredentials("alice", "pw"))
            first = await manager.authorization()
            second = await manager.authorization()

        assert first == second
        assert len(httpx_mock.requests) == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_login_when_refresh_is_rejected(self, httpx_mock):
        # Expires inside the refresh margin, so the next call renews
        httpx_mock.add_response(url=TOKEN_URL, method="POST", json=token_body(expires_in=10))
        httpx_mock.add_response(url=TOKEN_URL, method="POST", status_code=400, json={"error": "invalid_grant"})
        httpx_mock.add_response(url=TOKEN_URL, method="POST", json=token_body("alice-2", expires_in=300))

        async with httpx.AsyncClient() as http:
            manager = TokenManager(
                KeycloakAuth(TOKEN_URL, "c", http),
                LoginCredentials("alice", "pw"),
                refresh_margin_seconds=60,
            )
            await manager.authorization()
            subject = await manager.subject()

        assert subject == "alice-2"
        grants = [r.data["grant_type"] for r in httpx_mock.requests]
        assert grants == ["password", "refresh_token", "password"]

    @pytest.mark.asyncio
    async def test_refresh_is_used_when_accepted(self, httpx_mock):
        httpx_mock.add_response(url=TOKEN_URL, method="POST", json=token_body(expires_in=10))
        httpx_mock.add_response(url=TOKEN_URL, method="POST", json=token_body("refreshed", expires_in=300))

        async with httpx.AsyncClient() as http:
            manager = TokenManager(KeycloakAuth(TOKEN_URL, "c", http), LoginCredentials("alice", "pw"))
            await manager.authorization()
            assert await manager.subject() == "refreshed"

        assert httpx_mock.requests[1].data["refresh_token"] == "refresh-1"

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_login(self, httpx_mock):
        async def slow_login(request):
            await asyncio.sleep(0.01)
            return httpx.Response(200, json=token_body())

        httpx_mock.add_callback(slow_login, url=TOKEN_URL, method="POST", reusable=True)

        async with httpx.AsyncClient() as http:
            manager = TokenManager(KeycloakAuth(TOKEN_URL, "c", http), LoginCredentials("alice", "pw"))
            results = await asyncio.gather(*(manager.authorization() for _ in range(5)))

        assert len(set(results)) == 1
        assert len(httpx_mock.requests) == 1

    @pytest.mark.asyncio
    async def test_invalidate_forces_new_login(self, httpx_mock):
        httpx_mock.add_response(url=TOKEN_URL, method="POST", json=token_body("first"))
        httpx_mock.add_response(url=TOKEN_URL, method="POST", json=token_body("second"))

        async with httpx.AsyncClient() as http:
            manager = TokenManager(KeycloakAuth(TOKEN_URL, "c", http), LoginCredentials("alice", "pw"))
            stale = await manager.authorization()
            assert await manager.invalidate(stale)
            assert await manager.subject() == "second"

        assert [r.data["grant_type"] for r in httpx_mock.requests] == ["password", "password"]


class TestStaticToken:
    """Tests for StaticToken."""

    @pytest.mark.asyncio
    async def test_static_token(self):
        token = StaticToken(make_jwt("svc-account"))

        assert await token.subject() == "svc-account"
        assert (await token.authorization()).startswith("Bearer ")
        assert await token.invalidate("Bearer whatever") is False

    def test_malformed_static_token(self):
        with pytest.raises(MalformedTokenError):
            StaticToken("not-a-jwt")
