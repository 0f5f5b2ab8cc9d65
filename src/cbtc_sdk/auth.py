"""
Session/auth provider backed by a Keycloak OpenID Connect token endpoint.

Usage:
    auth = KeycloakAuth(token_url(host, realm), client_id="cbtc", http=http)
    tokens = TokenManager(auth, LoginCredentials(username="alice", password="..."))
    headers = {"Authorization": await tokens.authorization()}
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
import jwt
from pydantic import ValidationError as PydanticValidationError

from .errors import AuthError, CBTCError, MalformedTokenError
from .http import ServiceClient
from .logging import mask_value
from .models.auth import Credential, TokenResponse

logger = logging.getLogger(__name__)


def token_url(host: str, realm: str) -> str:
    """Token endpoint of a Keycloak realm."""
    return f"{host.rstrip('/')}/auth/realms/{realm}/protocol/openid-connect/token"


def extract_subject(token: str) -> str:
    """Read the ``sub`` claim from a compact JWT without verifying it.

    Raises:
        MalformedTokenError: if the token is not three segments, the payload is
            not base64url JSON, or the claim is missing.
    """
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        raise MalformedTokenError(f"Token cannot be decoded: {e}") from e

    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject:
        raise MalformedTokenError("Token has no 'sub' claim")
    return subject


@dataclass
class LoginCredentials:
    """Secrets used for a full login.

    A ``client_secret`` selects the client-credentials grant; otherwise the
    password grant is used.
    """

    username: str = ""
    password: str = field(default="", repr=False)
    client_secret: Optional[str] = field(default=None, repr=False)


class KeycloakAuth(ServiceClient):
    """Obtains and refreshes bearer credentials."""

    service_name = "keycloak"
    unavailable_error = AuthError

    def __init__(self, url: str, client_id: str, http: httpx.AsyncClient) -> None:
        super().__init__(url, http)
        self._client_id = client_id

    def _error_for_status(self, response: httpx.Response) -> CBTCError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        description = body.get("error_description") or body.get("error") or response.text
        return AuthError(
            f"Token request failed ({response.status_code}): {description}",
            status_code=response.status_code,
            details={"error": body.get("error")},
        )

    async def authenticate(self, credentials: LoginCredentials) -> Credential:
        """Full login with the grant ``credentials`` allow."""
        if credentials.client_secret:
            return await self.client_credentials(credentials.client_secret)
        return await self.password_login(credentials.username, credentials.password)

    async def password_login(self, username: str, password: str) -> Credential:
        logger.debug("Password login for %s", username)
        return await self._token({
            "grant_type": "password",
            "client_id": self._client_id,
            "username": username,
            "password": password,
        })

    async def client_credentials(self, client_secret: str) -> Credential:
        logger.debug("Client-credentials login for %s", self._client_id)
        return await self._token({
            "grant_type": "client_credentials",
            "client_id": self._client_id,
            "client_secret": client_secret,
        })

    async def refresh(self, credential: Credential) -> Credential:
        """Exchange the refresh token for a new credential.

        Raises:
            AuthError: if there is no refresh token or it was rejected; the
                caller must fall back to ``authenticate``.
        """
        if not credential.refresh_token:
            raise AuthError("Credential has no refresh token")
        return await self._token({
            "grant_type": "refresh_token",
            "client_id": self._client_id,
            "refresh_token": credential.refresh_token,
        })

    async def _token(self, form: dict[str, str]) -> Credential:
        response = await self._request("POST", "", data=form)
        data: Any = self._json(response)
        try:
            token = TokenResponse.model_validate(data)
        except PydanticValidationError as e:
            raise AuthError("Token endpoint returned an unexpected body") from e
        return Credential.from_response(token, extract_subject(token.access_token))


class TokenManager:
    """Shares one credential between concurrent operations.

    Renewal is single-flight: concurrent callers that find the credential
    near expiry wait on one refresh instead of each logging in.
    """

    def __init__(
        self,
        auth: KeycloakAuth,
        credentials: LoginCredentials,
        *,
        refresh_margin_seconds: float = 60,
    ) -> None:
        self._auth = auth
        self._credentials = credentials
        self._margin = refresh_margin_seconds
        self._credential: Optional[Credential] = None
        self._lock = asyncio.Lock()

    def _usable(self, credential: Optional[Credential]) -> bool:
        return credential is not None and not credential.expires_within(self._margin)

    async def get_credential(self) -> Credential:
        credential = self._credential
        if self._usable(credential):
            return credential  # type: ignore[return-value]

        async with self._lock:
            if self._usable(self._credential):
                return self._credential  # type: ignore[return-value]
            if self._credential is None:
                self._credential = await self._auth.authenticate(self._credentials)
            else:
                self._credential = await self._renew(self._credential)
            logger.debug("Credential for %s valid until %s", mask_value(self._credential.subject), self._credential.expires_at)
            return self._credential

    async def _renew(self, credential: Credential) -> Credential:
        if credential.refresh_token:
            try:
                return await self._auth.refresh(credential)
            except AuthError as e:
                logger.info("Refresh token rejected (%s); logging in again", e.message)
        return await self._auth.authenticate(self._credentials)

    async def authorization(self) -> str:
        return (await self.get_credential()).authorization

    async def subject(self) -> str:
        return (await self.get_credential()).subject

    async def invalidate(self, authorization: str) -> bool:
        """Drop the credential if it is the one that was rejected."""
        async with self._lock:
            if self._credential is not None and self._credential.authorization == authorization:
                self._credential = None
        return True


class StaticToken:
    """Token source for a caller-managed bearer token."""

    def __init__(self, access_token: str) -> None:
        self._access_token = access_token
        self._subject = extract_subject(access_token)

    async def authorization(self) -> str:
        return f"Bearer {self._access_token}"

    async def subject(self) -> str:
        return self._subject

    async def invalidate(self, authorization: str) -> bool:
        return False
