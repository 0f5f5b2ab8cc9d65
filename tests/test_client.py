"""
Tests for CBTCClient wiring.
"""
from decimal import Decimal

import httpx
import pytest

from cbtc_sdk import CBTCClient, CBTCSettings, StaticToken
from cbtc_sdk.constants import Interfaces
from cbtc_sdk.errors import ValidationError

from fakes import ALICE, REGISTRAR, make_jwt

LEDGER = "http://ledger:7575"


def settings(**overrides):
    values = {
        "ledger_host": LEDGER,
        "party_id": ALICE,
        "attestor_url": "https://attestor",
        "registry_url": "https://registry",
        "decentralized_party_id": REGISTRAR,
    }
    values.update(overrides)
    return CBTCSettings(_env_file=None, **values)


def holding_entry(contract_id, owner, amount, lock=None):
    view = {"owner": owner, "instrumentId": {"admin": REGISTRAR, "id": "CBTC"}, "amount": amount, "lock": lock}
    return {
        "contractEntry": {
            "JsActiveContract": {
                "createdEvent": {
                    "contractId": contract_id,
                    "templateId": "abc123:Utility.Registry.Holding.V0.Holding:Holding",
                    "createArgument": None,
                    "createdEventBlob": "blob",
                    "interfaceViews": [{"interfaceId": Interfaces.HOLDING, "viewValue": view}],
                },
                "synchronizerId": "global-domain::1220",
            }
        }
    }


class TestCBTCClient:
    """Tests for CBTCClient."""

    @pytest.mark.asyncio
    async def test_wiring(self):
        async with CBTCClient(settings(), tokens=StaticToken(make_jwt("svc"))) as client:
            assert client.party == ALICE
            assert client.registry.registrar_party == REGISTRAR
            assert client.transfers.instrument.admin == REGISTRAR
            assert client.mint_workflow() is not None
            assert client.redeem_workflow(party="bob::1") is not None

    @pytest.mark.asyncio
    async def test_party_must_be_configured(self):
        async with CBTCClient(settings(party_id=""), tokens=StaticToken(make_jwt())) as client:
            with pytest.raises(ValidationError):
                client.party

    @pytest.mark.asyncio
    async def test_closes_only_its_own_http_client(self):
        http = httpx.AsyncClient()
        async with CBTCClient(settings(), http=http, tokens=StaticToken(make_jwt())):
            pass
        assert not http.is_closed
        await http.aclose()

        client = CBTCClient(settings(), tokens=StaticToken(make_jwt()))
        await client.close()
        assert client._http.is_closed

    @pytest.mark.asyncio
    async def test_balance_over_the_ledger_api(self, httpx_mock):
        token = make_jwt("svc")
        httpx_mock.add_response(url=f"{LEDGER}/v2/state/ledger-end", json={"offset": 12})
        httpx_mock.add_response(
            url=f"{LEDGER}/v2/state/active-contracts",
            method="POST",
            json=[
                holding_entry("h1", ALICE, "0.5"),
                holding_entry("h2", ALICE, "0.25"),
                holding_entry("h3", ALICE, "1", lock={"holders": [REGISTRAR]}),
                holding_entry("h4", "bob::1", "3"),
            ],
        )

        async with CBTCClient(settings(), tokens=StaticToken(token)) as client:
            balance = await client.balance()

        assert balance == Decimal("0.75")
        request = httpx_mock.get_requests(method="POST")[0]
        assert request.headers["Authorization"] == f"Bearer {token}"
        identifier = request.json["filter"]["filtersByParty"][ALICE]["cumulative"][0]["identifierFilter"]
        assert identifier["InterfaceFilter"]["value"]["interfaceId"] == Interfaces.HOLDING
