"""
Pytest configuration and fixtures for CBTC SDK tests.
"""
from __future__ import annotations

import inspect
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
import pytest

from cbtc_sdk.disclosure import DisclosureResolver
from cbtc_sdk.holdings import HoldingSelector
from cbtc_sdk.locks import PartyLocks
from cbtc_sdk.mint import MintService
from cbtc_sdk.redeem import RedeemService
from cbtc_sdk.submission import CommandSubmitter
from cbtc_sdk.transfers import TransferService

from fakes import FakeAttestor, FakeLedger, FakeRegistry, FakeTokens


@dataclass
class RecordedRequest:
    method: str
    url: str
    json: Any = None
    data: Optional[dict[str, str]] = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class _MockEntry:
    method: str
    url: str
    response: Optional[httpx.Response] = None
    exception: Optional[Exception] = None
    callback: Optional[Callable[[RecordedRequest], Any]] = None
    reusable: bool = False


class _LocalHTTPXMock:
    """Minimal pytest-httpx-compatible mock that also records every request."""

    def __init__(self) -> None:
        self._entries: list[_MockEntry] = []
        self.requests: list[RecordedRequest] = []

    def add_response(
        self,
        *,
        url: str,
        method: str = "GET",
        status_code: int = 200,
        json: Any = None,
        text: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
        reusable: bool = False,
    ) -> None:
        if json is not None:
            content = json_dumps_bytes(json)
            response_headers = {"content-type": "application/json"}
            if headers:
                response_headers.update(headers)
        else:
            content = (text or "").encode("utf-8")
            response_headers = headers or {"content-type": "text/plain"}

        response = httpx.Response(
            status_code=status_code,
            headers=response_headers,
            content=content,
            request=httpx.Request(method.upper(), url),
        )
        self._entries.append(
            _MockEntry(method=method.upper(), url=url, response=response, reusable=reusable)
        )

    def add_exception(
        self,
        exception: Exception,
        *,
        url: str,
        method: str = "GET",
    ) -> None:
        self._entries.append(
            _MockEntry(method=method.upper(), url=url, exception=exception)
        )

    def add_callback(
        self,
        callback: Callable[[RecordedRequest], Any],
        *,
        url: str,
        method: str = "GET",
        reusable: bool = False,
    ) -> None:
        """Answer with ``callback(request)``, which returns (or awaits to) an ``httpx.Response``."""
        self._entries.append(
            _MockEntry(method=method.upper(), url=url, callback=callback, reusable=reusable)
        )

    def get_requests(self, *, url: Optional[str] = None, method: Optional[str] = None) -> list[RecordedRequest]:
        return [
            r for r in self.requests
            if (url is None or _normalize_url(r.url) == _normalize_url(url))
            and (method is None or r.method == method.upper())
        ]

    def _pop_match(self, method: str, url: str) -> _MockEntry:
        normalized_method = method.upper()
        normalized_url = _normalize_url(url)
        for idx, entry in enumerate(self._entries):
            if entry.method == normalized_method and _normalize_url(entry.url) == normalized_url:
                return entry if entry.reusable else self._entries.pop(idx)
        raise AssertionError(
            f"No mocked response for {normalized_method} {url}. "
            f"Available: {[f'{e.method} {e.url}' for e in self._entries]}"
        )


def json_dumps_bytes(payload: Any) -> bytes:
    return json.dumps(payload, default=str).encode("utf-8")


def _normalize_url(url: str) -> str:
    parts = urlsplit(url)
    normalized_query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)), doseq=True)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, normalized_query, parts.fragment))


@pytest.fixture
def httpx_mock(monkeypatch):
    """`httpx_mock` fixture patching ``httpx.AsyncClient.request``."""
    mock = _LocalHTTPXMock()

    async def _async_request(self, method, url, *, json=None, data=None, headers=None, **kwargs):
        recorded = RecordedRequest(
            method=method.upper(),
            url=str(url),
            json=json,
            data=dict(data) if data is not None else None,
            headers=dict(headers or {}),
        )
        mock.requests.append(recorded)
        match = mock._pop_match(method, str(url))
        if match.exception is not None:
            raise match.exception
        if match.callback is not None:
            response = match.callback(recorded)
            if inspect.isawaitable(response):
                response = await response
            response.request = httpx.Request(recorded.method, recorded.url)
            return response
        assert match.response is not None
        return match.response

    monkeypatch.setattr(httpx.AsyncClient, "request", _async_request)
    return mock


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def attestor():
    return FakeAttestor()


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def tokens():
    return FakeTokens()


@pytest.fixture
def locks():
    return PartyLocks()


@pytest.fixture
def submitter(ledger, tokens):
    return CommandSubmitter(ledger, tokens)


@pytest.fixture
def selector(ledger):
    return HoldingSelector(ledger)


@pytest.fixture
def disclosures(attestor):
    return DisclosureResolver(attestor)


@pytest.fixture
def mint(ledger, attestor, submitter, disclosures):
    return MintService(ledger, attestor, submitter, disclosures, poll_interval=0.01)


@pytest.fixture
def redeem(ledger, submitter, disclosures, selector, locks):
    return RedeemService(ledger, submitter, disclosures, selector, locks, poll_interval=0.01)


@pytest.fixture
def transfers(ledger, registry, submitter, selector, locks):
    return TransferService(
        ledger,
        registry,
        submitter,
        selector,
        locks,
        batch_accept_size=5,
        consolidation_threshold=3,
    )
