"""
Tests for the token-standard registry client.
"""
from datetime import datetime, timezone

import httpx
import pytest

from cbtc_sdk.errors import CBTCError, RegistryUnavailableError
from cbtc_sdk.models.transfer import InstrumentId, TransferSpec
from cbtc_sdk.registry import RegistryClient
from cbtc_sdk.retry import RetryConfig

from fakes import ALICE, BOB, REGISTRAR

REGISTRY = "https://registry.example.com"
ROOT = f"{REGISTRY}/api/token-standard/v0/registrars/{REGISTRAR}/registry/transfer-instruction/v1"

CHOICE_CONTEXT = {
    "choiceContextData": {
        "values": {
            "utility.digitalasset.com/instrument-configuration": {"tag": "AV_ContractId", "value": "ic-cid"},
        }
    },
    "disclosedContracts": [
        {
            "templateId": "#utility-registry-app-v0:Config:InstrumentConfiguration",
            "contractId": "ic-cid",
            "createdEventBlob": "ic-blob",
            "synchronizerId": "global-domain::1220",
            "debugPackageName": "utility-registry-app-v0",
        }
    ],
}


def spec():
    now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
    return TransferSpec(
        sender=ALICE,
        receiver=BOB,
        amount="0.5",
        instrument_id=InstrumentId(admin=REGISTRAR, id="CBTC"),
        requested_at=now,
        execute_before=now,
        input_holding_cids=["h1"],
        meta={"splice.lfdecentralizedtrust.org/reference": "ref-1"},
    )


class TestRegistryClient:
    """Tests for RegistryClient."""

    @pytest.mark.asyncio
    async def test_transfer_factory(self, httpx_mock):
        httpx_mock.add_response(
            url=f"{ROOT}/transfer-factory",
            method="POST",
            json={"factoryId": "factory-1", "transferKind": "offer", "choiceContext": CHOICE_CONTEXT},
        )

        async with httpx.AsyncClient() as http:
            factory = await RegistryClient(REGISTRY, http, REGISTRAR).transfer_factory(spec())

        assert factory.factory_id == "factory-1"
        assert factory.transfer_kind == "offer"
        assert factory.choice_context.values["utility.digitalasset.com/instrument-configuration"]["value"] == "ic-cid"
        assert factory.choice_context.disclosed_contracts[0].synchronizer_id == "global-domain::1220"

        body = httpx_mock.requests[0].json
        assert body["choiceArguments"]["expectedAdmin"] == REGISTRAR
        transfer = body["choiceArguments"]["transfer"]
        assert transfer["amount"] == "0.5"
        assert transfer["requestedAt"] == "2026-10-19T12:00:00Z"
        assert transfer["inputHoldingCids"] == ["h1"]
        assert transfer["meta"] == {"values": {"splice.lfdecentralizedtrust.org/reference": "ref-1"}}
        assert body["excludeDebugFields"] is True

    @pytest.mark.asyncio
    async def test_accept_and_withdraw_share_the_accept_context(self, httpx_mock):
        httpx_mock.add_response(url=f"{ROOT}/ti-1/choice-contexts/accept", method="POST", json=CHOICE_CONTEXT)
        httpx_mock.add_response(url=f"{ROOT}/ti-2/choice-contexts/accept", method="POST", json=CHOICE_CONTEXT)

        async with httpx.AsyncClient() as http:
            registry = RegistryClient(REGISTRY, http, REGISTRAR)
            accept = await registry.accept_context("ti-1")
            withdraw = await registry.withdraw_context("ti-2")

        assert accept.values == withdraw.values
        assert len(accept.disclosed_contracts) == 1
        assert httpx_mock.requests[0].json == {"meta": {"values": ""}}

    @pytest.mark.asyncio
    async def test_client_error_is_rejected(self, httpx_mock):
        httpx_mock.add_response(url=f"{ROOT}/missing/choice-contexts/accept", method="POST", status_code=404, text="not found")

        async with httpx.AsyncClient() as http:
            with pytest.raises(CBTCError) as exc_info:
                await RegistryClient(REGISTRY, http, REGISTRAR).accept_context("missing")

        assert exc_info.value.code == "REGISTRY_REJECTED"

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self, httpx_mock):
        httpx_mock.add_response(url=f"{ROOT}/transfer-factory", method="POST", status_code=500, text="boom")
        httpx_mock.add_response(
            url=f"{ROOT}/transfer-factory",
            method="POST",
            json={"factoryId": "factory-1", "choiceContext": CHOICE_CONTEXT},
        )

        async with httpx.AsyncClient() as http:
            registry = RegistryClient(REGISTRY, http, REGISTRAR, retry=RetryConfig(max_retries=1, base_delay=0, jitter=0))
            factory = await registry.transfer_factory(spec())

        assert factory.factory_id == "factory-1"
        assert len(httpx_mock.requests) == 2

    @pytest.mark.asyncio
    async def test_server_error_without_retries(self, httpx_mock):
        httpx_mock.add_response(url=f"{ROOT}/transfer-factory", method="POST", status_code=503, text="down")

        async with httpx.AsyncClient() as http:
            with pytest.raises(RegistryUnavailableError):
                await RegistryClient(REGISTRY, http, REGISTRAR).transfer_factory(spec())
