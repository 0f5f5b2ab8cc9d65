"""
Token-standard transfers of CBTC through the registry's transfer factory.

A transfer spends whole holdings; the factory returns the excess to the
sender as change and either settles directly or leaves a pending transfer
instruction for the receiver to accept. A transfer to oneself merges or
splits holdings.
"""
from __future__ import annotations

import base64
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Sequence

from .amounts import format_amount, require_positive
from .constants import (
    CONSOLIDATION_REASON,
    MERGE_SPLIT_KIND,
    SPLIT_REASON,
    Choices,
    Defaults,
    MetaKeys,
    Templates,
)
from .errors import CBTCError, InsufficientBalanceError, UnexpectedResponseError, ValidationError
from .holdings import HoldingSelector
from .ledger import LedgerClient
from .locks import PartyLocks
from .models.ledger import ExerciseCommand, TransactionResult
from .models.transfer import (
    ChoiceContext,
    ConsolidationResult,
    InstrumentId,
    OfferActionReport,
    OfferActionResult,
    SplitResult,
    TransferFactoryContext,
    TransferOffer,
    TransferResult,
    TransferSpec,
)
from .registry import RegistryClient
from .submission import CommandSubmitter

logger = logging.getLogger(__name__)


def generate_unique_reference(base: str, sender: str, receiver: str) -> str:
    """Deterministic per-recipient reference for one run, e.g. a payroll id."""
    return base64.b64encode(f"{base}-{sender}-{receiver}".encode()).decode()


def extra_args(context_values: Mapping[str, Any]) -> dict[str, Any]:
    return {"context": {"values": dict(context_values)}, "meta": {"values": {}}}


def transfer_outputs(result: TransactionResult) -> tuple[Optional[str], list[str], list[str]]:
    """Pending instruction id, receiver holdings and sender change of a transfer."""
    payload = result.exercise_result(Choices.TRANSFER)
    if not isinstance(payload, dict):
        raise UnexpectedResponseError(
            f"Update {result.update_id} has no {Choices.TRANSFER} result",
            details={"update_id": result.update_id},
        )
    output = (payload.get("output") or {}).get("value") or {}
    return (
        output.get("transferInstructionCid"),
        list(output.get("receiverHoldingCids") or []),
        list(payload.get("senderChangeCids") or []),
    )


def _result_amount(amount: Any) -> str:
    try:
        return format_amount(amount)
    except ValidationError:
        return str(amount)


def _chunks(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class TransferService:
    """Sends, accepts, cancels, merges and splits CBTC holdings."""

    def __init__(
        self,
        ledger: LedgerClient,
        registry: RegistryClient,
        submitter: CommandSubmitter,
        selector: HoldingSelector,
        locks: PartyLocks,
        *,
        instrument_id: str = Defaults.INSTRUMENT_ID,
        transfer_expiry_hours: int = Defaults.TRANSFER_EXPIRY_HOURS,
        batch_accept_size: int = Defaults.BATCH_ACCEPT_SIZE,
        consolidation_threshold: int = Defaults.CONSOLIDATION_THRESHOLD,
    ) -> None:
        self._ledger = ledger
        self._registry = registry
        self._submitter = submitter
        self._selector = selector
        self._locks = locks
        self.instrument_id = instrument_id
        self._expiry = timedelta(hours=transfer_expiry_hours)
        self._batch_accept_size = batch_accept_size
        self._consolidation_threshold = consolidation_threshold

    @property
    def selector(self) -> HoldingSelector:
        return self._selector

    @property
    def instrument(self) -> InstrumentId:
        return InstrumentId(admin=self._registry.registrar_party, id=self.instrument_id)

    def build_transfer(
        self,
        sender: str,
        receiver: str,
        amount: Any,
        input_holding_cids: Sequence[str],
        *,
        reference: Optional[str] = None,
        meta: Optional[Mapping[str, str]] = None,
        now: Optional[datetime] = None,
    ) -> TransferSpec:
        requested_at = now or datetime.now(timezone.utc)
        values = dict(meta or {})
        if reference:
            values[MetaKeys.REFERENCE] = reference
        return TransferSpec(
            sender=sender,
            receiver=receiver,
            amount=require_positive(amount),
            instrument_id=self.instrument,
            requested_at=requested_at,
            execute_before=requested_at + self._expiry,
            input_holding_cids=list(input_holding_cids),
            meta=values,
        )

    async def transfer_factory(self, spec: TransferSpec) -> TransferFactoryContext:
        return await self._registry.transfer_factory(spec)

    async def submit_transfer(
        self,
        spec: TransferSpec,
        factory: Optional[TransferFactoryContext] = None,
        *,
        idempotency_key: Optional[str] = None,
    ) -> TransactionResult:
        """Exercise ``TransferFactory_Transfer``; ``factory`` may be reused across transfers."""
        if factory is None:
            factory = await self.transfer_factory(spec)
        exercise = ExerciseCommand(
            template_id=Templates.TRANSFER_FACTORY,
            contract_id=factory.factory_id,
            choice=Choices.TRANSFER,
            choice_argument={
                "expectedAdmin": self._registry.registrar_party,
                "transfer": spec.to_dict(),
                "extraArgs": extra_args(factory.choice_context.values),
            },
        )
        return await self._submitter.submit(
            spec.sender,
            exercise,
            factory.choice_context.disclosed_contracts,
            idempotency_key,
        )

    async def send(
        self,
        sender: str,
        receiver: str,
        amount: Any,
        *,
        reference: Optional[str] = None,
        input_holding_cids: Optional[Sequence[str]] = None,
        factory: Optional[TransferFactoryContext] = None,
        index: int = 0,
        idempotency_key: Optional[str] = None,
    ) -> TransferResult:
        """Transfer ``amount`` to ``receiver``.

        Holdings are selected under the sender's lock unless
        ``input_holding_cids`` is given. Failures are reported in the result,
        never raised.
        """
        try:
            need = require_positive(amount)
            async with self._locks.lock_for(sender):
                if input_holding_cids is None:
                    selection = await self._selector.select_holdings(sender, self.instrument_id, need)
                    input_holding_cids = selection.contract_ids
                spec = self.build_transfer(sender, receiver, need, input_holding_cids, reference=reference)
                result = await self.submit_transfer(spec, factory, idempotency_key=idempotency_key)
            instruction_cid, receiver_cids, change_cids = transfer_outputs(result)
        except CBTCError as e:
            logger.warning("Transfer %d of %s to %s failed: %s", index, amount, receiver, e)
            return TransferResult(
                success=False,
                index=index,
                receiver=receiver,
                amount=_result_amount(amount),
                reference=reference,
                error=e.message,
                error_code=e.code,
            )

        logger.info(
            "Transfer %d: %s %s to %s in update %s",
            index,
            format_amount(need),
            self.instrument_id,
            receiver,
            result.update_id,
        )
        return TransferResult(
            success=True,
            index=index,
            receiver=receiver,
            amount=format_amount(need),
            contract_id=instruction_cid or next(iter(receiver_cids), None),
            update_id=result.update_id,
            reference=reference,
            raw_response=result.raw,
            sender_change_cids=tuple(change_cids),
        )

    async def _offers(self, party: str) -> list[TransferOffer]:
        contracts = await self._ledger.contracts_by_template(party, Templates.TRANSFER_OFFER)
        offers = []
        for contract in contracts:
            offer = TransferOffer.from_contract(contract)
            if offer is None:
                continue
            if offer.instrument_id is not None and offer.instrument_id.lower() != self.instrument_id.lower():
                continue
            offers.append(offer)
        return offers

    async def list_incoming_offers(self, party: str) -> list[TransferOffer]:
        """Pending transfers waiting for ``party`` to accept."""
        return [o for o in await self._offers(party) if o.receiver == party]

    async def list_outgoing_offers(self, party: str) -> list[TransferOffer]:
        """Pending transfers ``party`` sent that the receiver has not accepted."""
        return [o for o in await self._offers(party) if o.sender == party]

    def _instruction_exercise(self, offer_cid: str, choice: str, context: ChoiceContext) -> ExerciseCommand:
        return ExerciseCommand(
            template_id=Templates.TRANSFER_INSTRUCTION,
            contract_id=offer_cid,
            choice=choice,
            choice_argument={"extraArgs": extra_args(context.values)},
        )

    async def accept(self, party: str, offer: TransferOffer) -> OfferActionResult:
        """Accept one incoming transfer as its receiver."""
        try:
            context = await self._registry.accept_context(offer.contract_id)
            result = await self._submitter.submit(
                party,
                self._instruction_exercise(offer.contract_id, Choices.ACCEPT, context),
                context.disclosed_contracts,
            )
        except CBTCError as e:
            logger.warning("Accepting %s failed: %s", offer.contract_id, e)
            return OfferActionResult(False, offer.contract_id, offer.amount, offer.sender, error=e.message)
        return OfferActionResult(True, offer.contract_id, offer.amount, offer.sender, update_id=result.update_id)

    async def accept_all(self, party: str) -> OfferActionReport:
        """Accept every incoming transfer, several per submission.

        Each chunk of ``batch_accept_size`` offers is one command using the
        registry context of its first offer; if the chunk fails, every offer
        in it is reported as failed.
        """
        report = OfferActionReport()
        offers = await self.list_incoming_offers(party)
        if not offers:
            logger.debug("No pending transfers for %s", party)
            return report

        for chunk in _chunks(offers, self._batch_accept_size):
            try:
                context = await self._registry.accept_context(chunk[0].contract_id)
                result = await self._submitter.submit(
                    party,
                    [self._instruction_exercise(o.contract_id, Choices.ACCEPT, context) for o in chunk],
                    context.disclosed_contracts,
                )
            except CBTCError as e:
                logger.warning("Accepting %d transfers failed: %s", len(chunk), e)
                report.results.extend(
                    OfferActionResult(False, o.contract_id, o.amount, o.sender, error=e.message) for o in chunk
                )
                continue
            report.results.extend(
                OfferActionResult(True, o.contract_id, o.amount, o.sender, update_id=result.update_id) for o in chunk
            )

        logger.info("Accepted %d of %d transfers for %s", report.successful_count, len(offers), party)
        return report

    async def cancel(self, party: str, offer: TransferOffer) -> OfferActionResult:
        """Withdraw a pending transfer as its sender; the holdings return to ``party``."""
        try:
            context = await self._registry.withdraw_context(offer.contract_id)
            result = await self._submitter.submit(
                party,
                self._instruction_exercise(offer.contract_id, Choices.CANCEL, context),
                context.disclosed_contracts,
            )
        except CBTCError as e:
            logger.warning("Cancelling %s failed: %s", offer.contract_id, e)
            return OfferActionResult(False, offer.contract_id, offer.amount, offer.receiver, error=e.message)
        return OfferActionResult(True, offer.contract_id, offer.amount, offer.receiver, update_id=result.update_id)

    async def cancel_all(self, party: str) -> OfferActionReport:
        report = OfferActionReport()
        for offer in await self.list_outgoing_offers(party):
            report.results.append(await self.cancel(party, offer))
        return report

    async def consolidate(self, party: str) -> ConsolidationResult:
        """Merge all unlocked holdings into one with a self-transfer."""
        async with self._locks.lock_for(party):
            holdings = await self._selector.list_holdings(party, self.instrument_id)
            if len(holdings) < 2:
                return ConsolidationResult(consolidated=False, input_count=len(holdings))

            total = sum((h.amount for h in holdings), Decimal(0))
            spec = self.build_transfer(
                party,
                party,
                total,
                [h.contract_id for h in holdings],
                meta={MetaKeys.REASON: CONSOLIDATION_REASON, MetaKeys.TX_KIND: MERGE_SPLIT_KIND},
            )
            result = await self.submit_transfer(spec)

        _, receiver_cids, _ = transfer_outputs(result)
        logger.info("Consolidated %d holdings of %s into %s", len(holdings), party, receiver_cids)
        return ConsolidationResult(
            consolidated=True,
            input_count=len(holdings),
            output_cids=tuple(receiver_cids),
            update_id=result.update_id,
        )

    async def check_and_consolidate(self, party: str, threshold: Optional[int] = None) -> ConsolidationResult:
        """Consolidate only when ``party`` holds more than ``threshold`` holdings."""
        limit = threshold if threshold is not None else self._consolidation_threshold
        holdings = await self._selector.list_holdings(party, self.instrument_id)
        if len(holdings) <= limit:
            logger.debug("%s has %d holdings, threshold %d; not consolidating", party, len(holdings), limit)
            return ConsolidationResult(consolidated=False, input_count=len(holdings))
        return await self.consolidate(party)

    async def split(
        self,
        party: str,
        amounts: Sequence[Any],
        *,
        input_holding_cids: Optional[Sequence[str]] = None,
    ) -> SplitResult:
        """Split holdings into one new holding per amount, plus change.

        Each step spends the previous step's change.

        Raises:
            InsufficientBalanceError: the inputs run out before every amount is split off.
        """
        if not amounts:
            raise ValidationError("At least one amount is required", "amounts")
        needs = [require_positive(a) for a in amounts]

        outputs: list[str] = []
        update_ids: list[str] = []
        async with self._locks.lock_for(party):
            if input_holding_cids is None:
                selection = await self._selector.select_holdings(party, self.instrument_id, sum(needs, Decimal(0)))
                input_holding_cids = selection.contract_ids
            current = list(input_holding_cids)

            for need in needs:
                if not current:
                    raise InsufficientBalanceError(have=Decimal(0), need=need, instrument=self.instrument_id)
                spec = self.build_transfer(
                    party,
                    party,
                    need,
                    current,
                    meta={MetaKeys.REASON: SPLIT_REASON, MetaKeys.TX_KIND: MERGE_SPLIT_KIND},
                )
                result = await self.submit_transfer(spec)
                _, receiver_cids, change_cids = transfer_outputs(result)
                if not receiver_cids:
                    raise UnexpectedResponseError(f"Split in update {result.update_id} produced no holding")
                outputs.append(receiver_cids[0])
                update_ids.append(result.update_id)
                current = change_cids

        return SplitResult(output_cids=tuple(outputs), change_cids=tuple(current), update_ids=tuple(update_ids))
