"""
Batch distribution of CBTC to many recipients.

Usage:
    report = await engine.run_batch(
        sender,
        [TransferItem(receiver="bob::1220...", amount="0.01"), ...],
        on_each=lambda result: print(result.to_dict()),
        reference_base="payroll-2026-10",
    )
    print(f"{report.successful_count}/{report.total} sent")

Items run strictly one after another so each selection sees the holdings
left by the previous item. One item failing never fails the batch, and a
failing callback never changes an item's result.
"""
from __future__ import annotations

import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from .amounts import require_positive
from .errors import ValidationError
from .http import TokenSource
from .models.transfer import BatchReport, TransferItem, TransferResult
from .transfers import TransferService, generate_unique_reference

logger = logging.getLogger(__name__)

TransferCallback = Callable[[TransferResult], Union[None, Awaitable[None]]]


def parse_items(items: Sequence[Union[TransferItem, Mapping[str, Any]]]) -> list[TransferItem]:
    """Validate a batch before anything is submitted.

    Raises:
        ValidationError: naming the index of the first malformed item.
    """
    parsed = []
    for index, item in enumerate(items):
        try:
            transfer = item if isinstance(item, TransferItem) else TransferItem.model_validate(item)
        except PydanticValidationError as e:
            raise ValidationError(f"Batch item {index} is malformed: {e.errors(include_url=False)}", "items") from e
        except ValidationError as e:
            raise ValidationError(f"Batch item {index}: {e.message}", f"items[{index}].{e.field}") from e
        if not transfer.receiver:
            raise ValidationError(f"Batch item {index} has no receiver", "receiver")
        require_positive(transfer.amount, f"items[{index}].amount")
        parsed.append(transfer)
    return parsed


class BatchEngine:
    """Runs single transfers over a list of recipients and collects the results."""

    def __init__(self, transfers: TransferService, tokens: TokenSource) -> None:
        self._transfers = transfers
        self._tokens = tokens

    async def run_batch(
        self,
        sender: str,
        items: Sequence[Union[TransferItem, Mapping[str, Any]]],
        on_each: Optional[TransferCallback] = None,
        *,
        reference_base: Optional[str] = None,
        chain_change: bool = False,
    ) -> BatchReport:
        """Transfer to every item in order.

        Args:
            sender: Party paying every item
            items: Recipients and amounts
            on_each: Called with each result before the next item starts
            reference_base: Derives a unique reference per recipient when an
                item has none
            chain_change: Spend each item's change in the next item instead of
                selecting holdings again; the first item spends every unlocked
                holding

        Raises:
            ValidationError: the item list is malformed; nothing was submitted.
            AuthError: the sender cannot log in; no item was attempted.
        """
        transfers = parse_items(items)
        report = BatchReport(started_at=datetime.now(timezone.utc))
        if not transfers:
            report.completed_at = report.started_at
            return report

        await self._tokens.authorization()

        # One factory lookup serves the whole batch
        first = transfers[0]
        factory = await self._transfers.transfer_factory(
            self._transfers.build_transfer(sender, first.receiver, first.amount, [])
        )

        holding_cids: Optional[list[str]] = None
        if chain_change:
            holdings = await self._transfers.selector.list_holdings(sender, self._transfers.instrument_id)
            holding_cids = [h.contract_id for h in holdings]

        for index, item in enumerate(transfers):
            reference = item.reference
            if reference is None and reference_base:
                reference = generate_unique_reference(reference_base, sender, item.receiver)

            result = await self._transfers.send(
                sender,
                item.receiver,
                item.amount,
                reference=reference,
                input_holding_cids=holding_cids,
                factory=factory,
                index=index,
            )
            if chain_change and result.success:
                holding_cids = list(result.sender_change_cids)
            report.results.append(result)

            if on_each is not None:
                await self._notify(on_each, result)

        report.completed_at = datetime.now(timezone.utc)
        logger.info(
            "Batch from %s finished: %d succeeded, %d failed",
            sender,
            report.successful_count,
            report.failed_count,
        )
        return report

    @staticmethod
    async def _notify(callback: TransferCallback, result: TransferResult) -> None:
        try:
            outcome = callback(result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("Batch callback failed for item %d", result.index)
