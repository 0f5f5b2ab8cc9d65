"""
Holding selection.

Holdings are UTXO-like: a spend consumes whole holdings and the ledger
returns any excess as a change holding. Selection is greedy, largest first,
with ties broken by contract id so the same holdings always produce the same
selection.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Iterable, Literal

from .amounts import require_positive
from .constants import Interfaces, Templates
from .errors import InsufficientBalanceError, UnexpectedResponseError
from .ledger import LedgerClient
from .models.holding import Holding, HoldingSelection

logger = logging.getLogger(__name__)

HoldingQuery = Literal["interface", "template"]


def greedy_select(holdings: Iterable[Holding], target: Any, instrument: str | None = None) -> HoldingSelection:
    """Pick unlocked holdings, largest first, until their sum covers ``target``.

    Raises:
        InsufficientBalanceError: if all unlocked holdings together are short.
    """
    need = require_positive(target, "target")
    spendable = [h for h in holdings if not h.is_locked]
    have = sum((h.amount for h in spendable), Decimal(0))
    if have < need:
        raise InsufficientBalanceError(have=have, need=need, instrument=instrument)

    selected: list[Holding] = []
    total = Decimal(0)
    for holding in sorted(spendable, key=lambda h: (-h.amount, h.contract_id)):
        if total >= need:
            break
        selected.append(holding)
        total += holding.amount

    return HoldingSelection(selected=selected, total=total, target=need, change=total - need)


class HoldingSelector:
    """Reads a party's holdings from the ledger and selects inputs for a spend.

    ``query`` picks how holdings are found: through the token-standard
    Holding interface, or through one concrete holding template.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        *,
        query: HoldingQuery = "interface",
        template_id: str = Templates.REGISTRY_HOLDING,
        interface_id: str = Interfaces.HOLDING,
    ) -> None:
        self._ledger = ledger
        self._query = query
        self._template_id = template_id
        self._interface_id = interface_id

    async def list_holdings(
        self,
        party: str,
        instrument_id: str,
        *,
        include_locked: bool = False,
    ) -> list[Holding]:
        """Holdings owned by ``party`` for ``instrument_id`` at the current offset."""
        if self._query == "interface":
            contracts = await self._ledger.contracts_by_interface(party, self._interface_id)
        else:
            contracts = await self._ledger.contracts_by_template(party, self._template_id)

        holdings = []
        for contract in contracts:
            try:
                holding = Holding.from_contract(contract)
            except UnexpectedResponseError as e:
                logger.warning("Skipping contract %s: %s", contract.contract_id, e.message)
                continue
            if holding.owner != party or holding.instrument_id.lower() != instrument_id.lower():
                continue
            if holding.is_locked and not include_locked:
                continue
            holdings.append(holding)
        return holdings

    async def balance(self, party: str, instrument_id: str) -> Decimal:
        """Sum of unlocked holdings."""
        holdings = await self.list_holdings(party, instrument_id)
        return sum((h.amount for h in holdings), Decimal(0))

    async def select_holdings(self, party: str, instrument_id: str, target: Any) -> HoldingSelection:
        """Select unlocked holdings covering ``target``; see ``greedy_select``."""
        holdings = await self.list_holdings(party, instrument_id)
        selection = greedy_select(holdings, target, instrument_id)
        logger.debug(
            "Selected %d of %d holdings for %s %s (change %s)",
            len(selection.selected),
            len(holdings),
            selection.target,
            instrument_id,
            selection.change,
        )
        return selection
