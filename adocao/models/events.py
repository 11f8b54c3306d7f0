# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Proposal event models.

Events are the source of truth for a proposal: they are appended, never
updated or deleted, and replaying them reproduces the proposal's column and
closure marker. Each event kind is its own frozen model; ``ProposalEvent`` is
the discriminated union over the ``type`` field.
"""

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from .base import ensure_utc, generate_object_id
from .enums import Column, DecisionOutcome


class BaseEvent(BaseModel):
    """Fields shared by every proposal event."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_object_id, description="Event identifier")
    at: datetime = Field(..., description="When the event happened (UTC)")
    actor_role: str = Field(..., min_length=1, description="Role that performed the action")

    @field_validator('at')
    @classmethod
    def validate_at(cls, v):
        """Store timestamps as aware UTC datetimes."""
        return ensure_utc(v)


def _require_note(note: Optional[str], message: str) -> str:
    if note is None or not note.strip():
        raise ValueError(message)
    return note.strip()


class CreateEvent(BaseEvent):
    """Marks the start of a proposal history."""

    type: Literal["create"] = "create"


class MoveEvent(BaseEvent):
    """Kanban movement between two columns."""

    type: Literal["move"] = "move"
    from_column: Column = Field(..., description="Column left")
    to_column: Column = Field(..., description="Column entered")
    note: Optional[str] = Field(None, description="Free-text observation")


class RequestAdjustmentsEvent(BaseEvent):
    """Reviewer asked the adopter for adjustments."""

    type: Literal["request_adjustments"] = "request_adjustments"
    from_column: Column = Field(..., description="Column the request was made from")
    to_column: Column = Field(default=Column.ADJUSTMENTS, description="Always adjustments")
    note: str = Field(..., description="Guidance shown to the adopter")

    @field_validator('note')
    @classmethod
    def validate_note(cls, v):
        return _require_note(v, 'Adjustments note cannot be empty')

    @field_validator('to_column')
    @classmethod
    def validate_to_column(cls, v):
        if v != Column.ADJUSTMENTS:
            raise ValueError('request_adjustments must target the adjustments column')
        return v


class OverrideEvent(BaseEvent):
    """A gate precondition was deliberately bypassed."""

    type: Literal["override"] = "override"
    from_column: Column = Field(..., description="Column at override time")
    to_column: Column = Field(..., description="Target of the overridden transition")
    note: str = Field(..., description="Mandatory justification")
    gate_from: Column = Field(..., description="Gated transition source")
    gate_to: Column = Field(..., description="Gated transition target")

    @field_validator('note')
    @classmethod
    def validate_note(cls, v):
        return _require_note(v, 'Override justification cannot be empty')


class DecisionEvent(BaseEvent):
    """Terminal decision on the proposal."""

    type: Literal["decision"] = "decision"
    outcome: DecisionOutcome = Field(..., description="approved or rejected")
    note: Optional[str] = Field(None, description="Decision note (required for rejections)")

    @model_validator(mode='after')
    def validate_rejection_note(self):
        if self.outcome == DecisionOutcome.REJECTED:
            _require_note(self.note, 'Rejection note cannot be empty')
        return self


ProposalEvent = Annotated[
    Union[CreateEvent, MoveEvent, RequestAdjustmentsEvent, OverrideEvent, DecisionEvent],
    Field(discriminator='type'),
]

proposal_event_adapter = TypeAdapter(ProposalEvent)
proposal_event_list_adapter = TypeAdapter(List[ProposalEvent])


def parse_event(data: dict) -> BaseEvent:
    """Validate a canonical event document into its concrete model."""
    return proposal_event_adapter.validate_python(data)


def sort_events(events: List[BaseEvent]) -> List[BaseEvent]:
    """Order by timestamp; ties keep insertion order."""
    return sorted(events, key=lambda e: e.at)
