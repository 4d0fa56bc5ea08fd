"""
Translate ClearNode signals into the intent lifecycle vocabulary.

Pure lookups: names are normalized (trimmed, lower-cased, runs of
spaces/hyphens collapsed to ``_``) and unknown names map to ``None``.
"""

from __future__ import annotations

import re

from jack_sdk.types import ExecutionStatus, MappedEvent, StepStatus

_SEPARATORS = re.compile(r"[\s-]+")


def _m(status: ExecutionStatus, label: str, step: StepStatus, terminal: bool = False) -> MappedEvent:
    return MappedEvent(execution_status=status, step_label=label, step_status=step, is_terminal=terminal)


_S = ExecutionStatus
_P = StepStatus

EVENT_STATUS_MAP: dict[str, MappedEvent] = {
    "quote_accepted": _m(_S.QUOTED, "Solver Quote Accepted (Yellow Network)", _P.COMPLETED),
    "solver_quoted": _m(_S.QUOTED, "Solver Quote Received (Yellow Network)", _P.COMPLETED),
    "execution_started": _m(_S.EXECUTING, "Execution Started (Yellow Network)", _P.IN_PROGRESS),
    "routing_started": _m(_S.EXECUTING, "Cross-Chain Routing Started (Yellow Network)", _P.IN_PROGRESS),
    "settlement_submitted": _m(_S.SETTLING, "Settlement Submitted (Yellow Network)", _P.IN_PROGRESS),
    "settled": _m(_S.SETTLED, "Settlement Finalized (Yellow Network)", _P.COMPLETED, True),
    "settlement_finalized": _m(_S.SETTLED, "Settlement Finalized (Yellow Network)", _P.COMPLETED, True),
    "failed": _m(_S.ABORTED, "Execution Failed (Yellow Network)", _P.FAILED, True),
    "execution_failed": _m(_S.ABORTED, "Execution Failed (Yellow Network)", _P.FAILED, True),
    "settlement_failed": _m(_S.ABORTED, "Settlement Failed (Yellow Network)", _P.FAILED, True),
    "canceled": _m(_S.ABORTED, "Intent Canceled (Yellow Network)", _P.FAILED, True),
    "expired": _m(_S.EXPIRED, "Intent Expired (Yellow Network)", _P.FAILED, True),
}

CHANNEL_STATUS_MAP: dict[str, MappedEvent] = {
    "void": _m(_S.CREATED, "Channel Status: VOID (ERC-7824)", _P.COMPLETED),
    "initial": _m(_S.QUOTED, "Channel Status: INITIAL (ERC-7824)", _P.IN_PROGRESS),
    "active": _m(_S.EXECUTING, "Channel Status: ACTIVE (ERC-7824)", _P.IN_PROGRESS),
    "dispute": _m(_S.EXECUTING, "Channel Status: DISPUTE (ERC-7824)", _P.IN_PROGRESS),
    "final": _m(_S.SETTLED, "Channel Status: FINAL (ERC-7824)", _P.COMPLETED, True),
}

# RESIZE reports a COMPLETED step while the intent stays EXECUTING.
STATE_INTENT_MAP: dict[str, MappedEvent] = {
    "initialize": _m(_S.QUOTED, "State Intent: INITIALIZE (ERC-7824)", _P.IN_PROGRESS),
    "operate": _m(_S.EXECUTING, "State Intent: OPERATE (ERC-7824)", _P.IN_PROGRESS),
    "resize": _m(_S.EXECUTING, "State Intent: RESIZE (ERC-7824)", _P.COMPLETED),
    "finalize": _m(_S.SETTLED, "State Intent: FINALIZE (ERC-7824)", _P.COMPLETED, True),
}


def normalize_key(value: str) -> str:
    return _SEPARATORS.sub("_", value.strip().lower())


def map_yellow_event(event: str) -> MappedEvent | None:
    return EVENT_STATUS_MAP.get(normalize_key(event))


def map_channel_status(status: str) -> MappedEvent | None:
    return CHANNEL_STATUS_MAP.get(normalize_key(status))


def map_state_intent(intent: str) -> MappedEvent | None:
    return STATE_INTENT_MAP.get(normalize_key(intent))


def infer_mapping(
    event: str | None = None,
    channel_status: str | None = None,
    state_intent: str | None = None,
) -> MappedEvent | None:
    """First recognized mapping among ``event``, ``channel_status``, ``state_intent``."""
    if event:
        mapped = map_yellow_event(event)
        if mapped:
            return mapped
    if channel_status:
        mapped = map_channel_status(channel_status)
        if mapped:
            return mapped
    if state_intent:
        mapped = map_state_intent(state_intent)
        if mapped:
            return mapped
    return None
