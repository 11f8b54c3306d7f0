# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the Adote uma Área platform.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict

from .base import BaseEntity, ensure_utc
from .enums import AreaStatus, AttachmentKind, ClosedStatus, Column, InspectionStatus
from .events import ProposalEvent, RequestAdjustmentsEvent


class AttachmentMeta(BaseModel):
    """Metadata of a document attached to a proposal. Contents are never stored."""

    model_config = ConfigDict(frozen=True)

    kind: AttachmentKind = Field(..., description="Document kind")
    file_name: str = Field(..., min_length=1, description="Original file name")
    file_size: int = Field(default=0, ge=0, description="Size in bytes")
    mime_type: str = Field(default="application/octet-stream", description="MIME type")
    last_modified: int = Field(default=0, description="Client-side modification time (epoch ms)")


def upsert_attachment(attachments: List[AttachmentMeta], item: AttachmentMeta) -> List[AttachmentMeta]:
    """Replace the attachment of the same kind, or append a new one."""
    result = list(attachments)
    for index, existing in enumerate(result):
        if existing.kind == item.kind:
            result[index] = item
            return result
    result.append(item)
    return result


class Area(BaseModel):
    """Public area that can be adopted."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(..., description="Area identifier")
    code: str = Field(default="", description="External/legacy area code")
    name: str = Field(default="", description="Display name")
    status: AreaStatus = Field(default=AreaStatus.AVAILABLE, description="Availability")
    active: bool = Field(default=True, description="Listed on the public portal")


class Inspection(BaseModel):
    """Site inspection linked to a proposal, as consumed by the gate."""

    id: str = Field(..., description="Inspection identifier")
    proposal_id: str = Field(..., description="Proposal under inspection")
    status: InspectionStatus = Field(default=InspectionStatus.SCHEDULED)
    updated_at: Optional[datetime] = Field(None)


class Proposal(BaseEntity):
    """Adoption proposal for a public area."""

    protocol_code: str = Field(..., min_length=1, description="Immutable external protocol code")
    area_id: str = Field(..., min_length=1, description="Linked area")
    area_name: str = Field(default="", description="Area display name")
    plan_description: str = Field(default="", description="Adoption plan")
    column: Column = Field(default=Column.PROTOCOL, description="Current kanban column")
    attachments: List[AttachmentMeta] = Field(default_factory=list)
    owner_role: str = Field(..., min_length=1, description="Submitting actor")
    history: List[ProposalEvent] = Field(default_factory=list, description="Ordered event log")
    closed_status: Optional[ClosedStatus] = Field(None, description="Set only on terminal columns")
    closed_at: Optional[datetime] = Field(None)

    @field_validator('plan_description')
    @classmethod
    def validate_plan(cls, v):
        return v.strip()

    @field_validator('closed_at')
    @classmethod
    def validate_closed_at(cls, v):
        return ensure_utc(v) if v is not None else v

    @model_validator(mode='after')
    def validate_closure(self):
        """Closure marker present if and only if the column is terminal."""
        if (self.closed_status is not None) != self.column.is_terminal:
            raise ValueError(
                f'Closure marker {self.closed_status} inconsistent with column {self.column.value}'
            )
        return self

    def with_changes(self, **changes) -> 'Proposal':
        """Validated copy with several fields replaced at once."""
        data = self.model_dump()
        data.update(changes)
        return self.__class__.model_validate(data)

    def is_closed(self) -> bool:
        """Check if the proposal reached a terminal column."""
        return self.closed_status is not None

    def last_event_at(self) -> Optional[datetime]:
        return self.history[-1].at if self.history else None

    def last_adjustments_request(self) -> Optional[RequestAdjustmentsEvent]:
        """Latest adjustments request, the guidance currently shown to the adopter."""
        for event in reversed(self.history):
            if isinstance(event, RequestAdjustmentsEvent):
                return event
        return None
