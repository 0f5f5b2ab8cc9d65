"""
Tests for batch distribution.
"""
import base64

import pytest

from cbtc_sdk.batch import BatchEngine, parse_items
from cbtc_sdk.constants import MetaKeys
from cbtc_sdk.errors import AuthError, ValidationError
from cbtc_sdk.models.transfer import TransferItem

from fakes import ALICE, BOB, CAROL

DAVE = "dave::1220ffff"


@pytest.fixture
def engine(transfers, tokens):
    return BatchEngine(transfers, tokens)


class TestParseItems:
    def test_accepts_models_and_dicts(self):
        items = parse_items([TransferItem(receiver=BOB, amount="0.1"), {"receiver": CAROL, "amount": "0.2"}])

        assert [i.receiver for i in items] == [BOB, CAROL]

    def test_names_the_bad_index(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_items([{"receiver": BOB, "amount": "0.1"}, {"receiver": CAROL, "amount": "0"}])

        assert "items[1]" in exc_info.value.message

    def test_missing_receiver(self):
        with pytest.raises(ValidationError):
            parse_items([{"amount": "0.1"}])


class TestBatchEngine:
    """Tests for BatchEngine.run_batch."""

    @pytest.mark.asyncio
    async def test_login_failure_fails_the_batch_before_any_item(self, ledger, registry, tokens, engine):
        ledger.add_holding(ALICE, "1")
        tokens.fail = AuthError("bad credentials")
        seen = []

        with pytest.raises(AuthError):
            await engine.run_batch(
                ALICE,
                [{"receiver": BOB, "amount": "0.1"}, {"receiver": CAROL, "amount": "0.1"}],
                on_each=seen.append,
            )

        assert seen == []
        assert registry.factory_calls == []
        assert len(ledger.holdings_of(ALICE)) == 1

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_batch(self, ledger, engine):
        ledger.add_holding(ALICE, "1")
        ledger.rejected_receivers.add(CAROL)
        seen = []

        report = await engine.run_batch(
            ALICE,
            [
                {"receiver": BOB, "amount": "0.1"},
                {"receiver": CAROL, "amount": "0.1"},
                {"receiver": DAVE, "amount": "0.1"},
            ],
            on_each=seen.append,
        )

        assert [r.success for r in report.results] == [True, False, True]
        assert [r.index for r in report.results] == [0, 1, 2]
        assert report.results[1].error_code == "RECEIVER_REJECTED"
        assert [r.receiver for r in seen] == [BOB, CAROL, DAVE]
        assert report.total == 3
        assert report.failed_count == 1
        assert report.to_dict()["summary"]["success_rate"] == "66.67%"

    @pytest.mark.asyncio
    async def test_raising_callback_is_isolated(self, ledger, engine):
        ledger.add_holding(ALICE, "1")
        calls = []

        def callback(result):
            calls.append(result.index)
            raise RuntimeError("callback bug")

        report = await engine.run_batch(
            ALICE,
            [{"receiver": BOB, "amount": "0.1"}, {"receiver": CAROL, "amount": "0.1"}],
            on_each=callback,
        )

        assert calls == [0, 1]
        assert report.successful_count == 2

    @pytest.mark.asyncio
    async def test_async_callback_is_awaited(self, ledger, engine):
        ledger.add_holding(ALICE, "1")
        seen = []

        async def callback(result):
            seen.append(result.to_dict())

        await engine.run_batch(ALICE, [{"receiver": BOB, "amount": "0.25"}], on_each=callback)

        assert seen[0]["amount"] == "0.25"
        assert seen[0]["success"] is True

    @pytest.mark.asyncio
    async def test_factory_is_fetched_once(self, ledger, registry, engine):
        for _ in range(3):
            ledger.add_holding(ALICE, "0.1")

        await engine.run_batch(ALICE, [{"receiver": r, "amount": "0.1"} for r in (BOB, CAROL, DAVE)])

        assert len(registry.factory_calls) == 1
        assert len(ledger.submissions) == 3

    @pytest.mark.asyncio
    async def test_malformed_batch_submits_nothing(self, ledger, registry, engine):
        with pytest.raises(ValidationError):
            await engine.run_batch(ALICE, [{"receiver": BOB, "amount": "0.1"}, {"receiver": CAROL, "amount": "abc"}])

        assert ledger.submissions == []
        assert registry.factory_calls == []

    @pytest.mark.asyncio
    async def test_empty_batch(self, ledger, engine):
        report = await engine.run_batch(ALICE, [])

        assert report.total == 0
        assert report.success_rate == 0.0
        assert ledger.submissions == []

    @pytest.mark.asyncio
    async def test_references_per_recipient(self, ledger, engine):
        ledger.add_holding(ALICE, "1")

        report = await engine.run_batch(
            ALICE,
            [{"receiver": BOB, "amount": "0.1"}, {"receiver": CAROL, "amount": "0.1", "reference": "custom"}],
            reference_base="payroll-2026-10",
        )

        assert base64.b64decode(report.results[0].reference).decode() == f"payroll-2026-10-{ALICE}-{BOB}"
        assert report.results[1].reference == "custom"
        metas = [s.commands[0].choice_argument["transfer"]["meta"]["values"] for s in ledger.submissions]
        assert [m[MetaKeys.REFERENCE] for m in metas] == [report.results[0].reference, "custom"]

    @pytest.mark.asyncio
    async def test_chain_change(self, ledger, engine):
        ledger.add_holding(ALICE, "0.6", contract_id="h1")
        ledger.add_holding(ALICE, "0.4", contract_id="h2")

        report = await engine.run_batch(
            ALICE,
            [{"receiver": BOB, "amount": "0.1"}, {"receiver": CAROL, "amount": "0.2"}],
            chain_change=True,
        )

        first, second = (s.commands[0].choice_argument["transfer"]["inputHoldingCids"] for s in ledger.submissions)
        assert sorted(first) == ["h1", "h2"]
        assert second == list(report.results[0].sender_change_cids)
        assert report.successful_count == 2
