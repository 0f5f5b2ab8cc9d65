"""Credential models."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from .base import CBTCModel


class TokenResponse(CBTCModel):
    """OpenID Connect token endpoint response."""

    access_token: str
    expires_in: int
    refresh_token: Optional[str] = None
    refresh_expires_in: Optional[int] = None
    token_type: str = "Bearer"


@dataclass
class Credential:
    """Bearer credential held by one workflow; never persisted."""

    access_token: str = field(repr=False)
    expires_at: datetime
    subject: str
    refresh_token: Optional[str] = field(default=None, repr=False)
    token_type: str = "Bearer"

    @classmethod
    def from_response(cls, response: TokenResponse, subject: str) -> "Credential":
        return cls(
            access_token=response.access_token,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=response.expires_in),
            subject=subject,
            refresh_token=response.refresh_token,
            token_type=response.token_type,
        )

    def expires_within(self, seconds: float) -> bool:
        return datetime.now(timezone.utc) + timedelta(seconds=seconds) >= self.expires_at

    @property
    def authorization(self) -> str:
        return f"Bearer {self.access_token}"
