"""
Tests for settings.
"""
import pytest
from pydantic import ValidationError as PydanticValidationError

from cbtc_sdk.config import CBTCSettings
from cbtc_sdk.constants import DECENTRALIZED_PARTY_IDS, Network


def settings(**overrides):
    return CBTCSettings(_env_file=None, **overrides)


class TestCBTCSettings:
    def test_defaults(self):
        s = settings()

        assert s.holding_query == "interface"
        assert s.instrument_id == "CBTC"
        assert s.batch_accept_size == 5
        assert s.registrar_party == DECENTRALIZED_PARTY_IDS[Network.DEVNET]

    def test_reads_prefixed_environment(self, monkeypatch):
        monkeypatch.setenv("CBTC_LEDGER_HOST", "https://participant.example.com/")
        monkeypatch.setenv("CBTC_PARTY_ID", "alice::1220aaaa")
        monkeypatch.setenv("CBTC_NETWORK", "mainnet")
        monkeypatch.setenv("CBTC_KEYCLOAK_PASSWORD", "hunter2")
        monkeypatch.setenv("CBTC_HOLDING_QUERY", "template")

        s = settings()

        assert s.ledger_host == "https://participant.example.com"
        assert s.party_id == "alice::1220aaaa"
        assert s.registrar_party == DECENTRALIZED_PARTY_IDS[Network.MAINNET]
        assert s.keycloak_password.get_secret_value() == "hunter2"
        assert "hunter2" not in repr(s)
        assert s.holding_query == "template"

    def test_explicit_registrar_overrides_network(self):
        assert settings(decentralized_party_id="custom::1220").registrar_party == "custom::1220"

    def test_token_url(self):
        s = settings(keycloak_host="http://kc:8082/", keycloak_realm="AppProvider")

        assert s.token_url == "http://kc:8082/auth/realms/AppProvider/protocol/openid-connect/token"

    @pytest.mark.parametrize(
        "field, value",
        [("poll_interval_seconds", 0), ("batch_accept_size", 0), ("holding_query", "both"), ("max_retries", -1)],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(PydanticValidationError):
            settings(**{field: value})
