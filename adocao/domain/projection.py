# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Projection of a proposal's event log.

The current column and closure marker of a proposal are never stored
independently: they are the left fold of its ordered events.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, Optional

from adocao.models.enums import ClosedStatus, Column, DecisionOutcome
from adocao.models.events import (
    BaseEvent, CreateEvent, DecisionEvent, MoveEvent, RequestAdjustmentsEvent
)

_CLOSURE_BY_COLUMN = {
    Column.TERM_SIGNED: ClosedStatus.APPROVED,
    Column.REJECTED: ClosedStatus.REJECTED,
}

_COLUMN_BY_OUTCOME = {
    DecisionOutcome.APPROVED: Column.TERM_SIGNED,
    DecisionOutcome.REJECTED: Column.REJECTED,
}


@dataclass(frozen=True)
class Projection:
    """Current-state view of a proposal."""
    column: Column = Column.PROTOCOL
    closed_status: Optional[ClosedStatus] = None
    closed_at: Optional[datetime] = None
    last_event_at: Optional[datetime] = None

    @property
    def is_closed(self) -> bool:
        return self.closed_status is not None


def _enter(state: Projection, column: Column, at: datetime) -> Projection:
    closed_status = _CLOSURE_BY_COLUMN.get(column)
    if closed_status is None:
        closed_at = None
    elif state.closed_status == closed_status:
        closed_at = state.closed_at
    else:
        closed_at = at
    return Projection(column=column, closed_status=closed_status, closed_at=closed_at, last_event_at=at)


def apply_event(state: Projection, event: BaseEvent) -> Projection:
    """Apply one event to a projection."""
    if isinstance(event, CreateEvent):
        if state.last_event_at is None:
            return _enter(state, Column.PROTOCOL, event.at)
        return replace(state, last_event_at=event.at)
    if isinstance(event, (MoveEvent, RequestAdjustmentsEvent)):
        return _enter(state, event.to_column, event.at)
    if isinstance(event, DecisionEvent):
        return _enter(state, _COLUMN_BY_OUTCOME[event.outcome], event.at)
    # Overrides record a bypass; they do not change state.
    return replace(state, last_event_at=event.at)


def fold(events: Iterable[BaseEvent]) -> Projection:
    """Replay an ordered event sequence from the initial state."""
    state = Projection()
    for event in events:
        state = apply_event(state, event)
    return state
