"""
Command submission and transaction-tree interpretation.

Usage:
    submitter = CommandSubmitter(ledger, tokens)
    result = await submitter.submit(
        party,
        ExerciseCommand(template_id=..., contract_id=..., choice=..., choice_argument=...),
        disclosed_contracts=bundle.disclosed_contracts,
        roles={"withdraw_request": Templates.WITHDRAW_REQUEST},
    )
    result.contracts["withdraw_request"]

A submission is built once and every retry sends the same command id, so the
ledger executes a logically distinct operation at most once.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from .errors import UnexpectedResponseError
from .http import TokenSource
from .ledger import LedgerClient
from .models.base import same_template
from .models.contracts import ActiveContract, DisclosedContract
from .models.ledger import EventKind, ExerciseCommand, Submission, TransactionResult, TreeEvent

logger = logging.getLogger(__name__)

ARCHIVE_CHOICE = "Archive"

# Wrapper keys used by the JSON API for tree events
_EXERCISED_KEYS = ("ExercisedTreeEvent", "ExercisedEvent")
_CREATED_KEYS = ("CreatedTreeEvent", "CreatedEvent")
_ARCHIVED_KEYS = ("ArchivedEvent", "ArchivedTreeEvent")


def new_command_id() -> str:
    """Fresh idempotency key for a logically distinct operation."""
    return f"cmd-{uuid.uuid4()}"


def _unwrap(event: Mapping[str, Any], keys: Sequence[str]) -> Optional[dict[str, Any]]:
    for key in keys:
        if key in event:
            body = event[key]
            if isinstance(body, dict) and isinstance(body.get("value"), dict):
                return body["value"]
            return body if isinstance(body, dict) else None
    return None


def _parse_event(node_id: int, event: Any) -> TreeEvent:
    if not isinstance(event, dict):
        raise UnexpectedResponseError(f"Tree event {node_id} is not an object")

    exercised = _unwrap(event, _EXERCISED_KEYS)
    if exercised is not None:
        choice = exercised.get("choice")
        consuming = bool(exercised.get("consuming", False))
        kind = EventKind.ARCHIVED if consuming and choice == ARCHIVE_CHOICE else EventKind.EXERCISED
        return TreeEvent(
            kind=kind,
            node_id=node_id,
            contract_id=exercised.get("contractId", ""),
            template_id=exercised.get("templateId", ""),
            choice=choice,
            consuming=consuming,
            payload=exercised.get("exerciseResult"),
            choice_argument=exercised.get("choiceArgument"),
        )

    created = _unwrap(event, _CREATED_KEYS)
    if created is not None:
        return TreeEvent(
            kind=EventKind.CREATED,
            node_id=node_id,
            contract_id=created.get("contractId", ""),
            template_id=created.get("templateId", ""),
            payload=created.get("createArgument"),
            created_event_blob=created.get("createdEventBlob"),
        )

    archived = _unwrap(event, _ARCHIVED_KEYS)
    if archived is not None:
        return TreeEvent(
            kind=EventKind.ARCHIVED,
            node_id=node_id,
            contract_id=archived.get("contractId", ""),
            template_id=archived.get("templateId", ""),
            consuming=True,
        )

    raise UnexpectedResponseError(f"Unknown tree event kind at node {node_id}: {sorted(event)}")


def _node_order(node_id: str) -> int:
    try:
        return int(node_id)
    except (TypeError, ValueError) as e:
        raise UnexpectedResponseError(f"Tree event id is not an integer: {node_id!r}") from e


def assign_roles(
    events: Iterable[TreeEvent],
    roles: Optional[Mapping[str, Optional[str]]],
) -> dict[str, str]:
    """Map logical roles to created contract ids.

    Roles are resolved in declaration order. A role with a template id takes
    the first unclaimed created event of that template; a role without one
    takes the next unclaimed created event in tree order.
    """
    if not roles:
        return {}
    created = [e for e in events if e.kind == EventKind.CREATED]
    claimed: set[int] = set()
    contracts: dict[str, str] = {}
    for role, template_id in roles.items():
        for event in created:
            if event.node_id in claimed:
                continue
            if template_id is None or same_template(event.template_id, template_id):
                claimed.add(event.node_id)
                contracts[role] = event.contract_id
                break
    return contracts


def parse_transaction_tree(
    raw: Mapping[str, Any],
    command_id: str,
    roles: Optional[Mapping[str, Optional[str]]] = None,
) -> TransactionResult:
    """Interpret a submit-and-wait-for-transaction-tree response.

    Events are ordered by node id; the first exercised event is the choice
    that was submitted and created events follow it.
    """
    tree = raw.get("transactionTree") or raw.get("transaction") or raw
    events_by_id = tree.get("eventsById")
    if not isinstance(events_by_id, dict):
        raise UnexpectedResponseError("Transaction tree has no eventsById map")

    events = [
        _parse_event(_node_order(node_id), events_by_id[node_id])
        for node_id in sorted(events_by_id, key=_node_order)
    ]
    offset = tree.get("offset")
    return TransactionResult(
        update_id=tree.get("updateId", ""),
        command_id=command_id,
        offset=int(offset) if offset is not None else None,
        events=events,
        contracts=assign_roles(events, roles),
        raw=dict(raw),
    )


def created_contract(result: TransactionResult, role: str) -> ActiveContract:
    """Created event assigned to ``role``, in active-contract form.

    Raises:
        UnexpectedResponseError: if the transaction created nothing for the role.
    """
    contract_id = result.contracts.get(role)
    for event in result.created:
        if contract_id is not None and event.contract_id == contract_id:
            return ActiveContract(
                contract_id=event.contract_id,
                template_id=event.template_id,
                create_argument=event.payload or {},
                created_event_blob=event.created_event_blob,
                offset=result.offset,
            )
    raise UnexpectedResponseError(
        f"Update {result.update_id} created no {role} contract",
        details={"update_id": result.update_id, "command_id": result.command_id},
    )


class CommandSubmitter:
    """Builds idempotent submissions and interprets their transaction trees.

    ``user_id`` defaults to the subject of the current bearer token.
    Transient ledger failures are retried by ``LedgerClient`` with the same
    request body, hence with the same command id.
    """

    def __init__(self, ledger: LedgerClient, tokens: TokenSource, *, user_id: Optional[str] = None) -> None:
        self._ledger = ledger
        self._tokens = tokens
        self._user_id = user_id

    async def build(
        self,
        acting_party: str,
        commands: Sequence[ExerciseCommand],
        disclosed_contracts: Iterable[DisclosedContract] = (),
        command_id: Optional[str] = None,
        read_as: Optional[Sequence[str]] = None,
    ) -> Submission:
        user_id = self._user_id or await self._tokens.subject()
        return Submission(
            act_as=[acting_party],
            read_as=list(read_as) if read_as is not None else [acting_party],
            user_id=user_id,
            command_id=command_id or new_command_id(),
            disclosed_contracts=list(disclosed_contracts),
            commands=list(commands),
        )

    async def submit(
        self,
        acting_party: str,
        exercise: Union[ExerciseCommand, Sequence[ExerciseCommand]],
        disclosed_contracts: Iterable[DisclosedContract] = (),
        idempotency_key: Optional[str] = None,
        *,
        roles: Optional[Mapping[str, Optional[str]]] = None,
        read_as: Optional[Sequence[str]] = None,
    ) -> TransactionResult:
        """Submit one or more exercises as a single command.

        Raises:
            SubmissionError: the ledger rejected the command (4xx).
            LedgerUnavailableError: 5xx or timeout after retries; resubmitting
                with the same ``idempotency_key`` is safe.
        """
        commands = [exercise] if isinstance(exercise, ExerciseCommand) else list(exercise)
        submission = await self.build(
            acting_party,
            commands,
            disclosed_contracts,
            command_id=idempotency_key,
            read_as=read_as,
        )
        raw = await self._ledger.submit_and_wait(submission)
        result = parse_transaction_tree(raw, submission.command_id, roles)
        logger.info(
            "Command %s committed as update %s (%d created, %d archived)",
            submission.command_id,
            result.update_id,
            len(result.created),
            len(result.archived),
        )
        return result
