# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Command models accepted by the workflow engine and the reporting service.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .base import ensure_utc
from .entities import AttachmentMeta
from .enums import Column, DecisionOutcome


class CreateProposalRequest(BaseModel):
    """Request model for protocoling a new adoption proposal."""

    area_id: str = Field(..., min_length=1, description="Area to adopt")
    plan_description: str = Field(..., min_length=1, max_length=5000, description="Adoption plan")
    attachments: List[AttachmentMeta] = Field(default_factory=list, description="Document metadata")
    owner_role: str = Field(..., min_length=1, description="Submitting actor")

    @field_validator('plan_description')
    @classmethod
    def validate_plan(cls, v):
        """Validate plan description."""
        if not v.strip():
            raise ValueError('Plan description cannot be empty')
        return v.strip()


class MoveProposalRequest(BaseModel):
    """Request model for a kanban movement."""

    to_column: Column = Field(..., description="Target column")
    actor_role: str = Field(..., min_length=1, description="Acting role")
    note: Optional[str] = Field(None, max_length=2000, description="Observation or mandatory reason")
    override_note: Optional[str] = Field(None, max_length=2000, description="Gate override justification")


class DecideProposalRequest(BaseModel):
    """Request model for a terminal decision."""

    outcome: DecisionOutcome = Field(..., description="approved or rejected")
    actor_role: str = Field(..., min_length=1, description="Acting role")
    note: Optional[str] = Field(None, max_length=2000, description="Reason (required for rejection)")


class ResubmitProposalRequest(BaseModel):
    """Fields an adopter may update when answering an adjustments request."""

    model_config = ConfigDict(extra='forbid')

    plan_description: Optional[str] = Field(None, max_length=5000, description="Updated plan")
    attachments: List[AttachmentMeta] = Field(
        default_factory=list, description="Replacement documents, upserted by kind"
    )

    @field_validator('plan_description')
    @classmethod
    def validate_plan(cls, v):
        if v is None:
            return v
        if not v.strip():
            raise ValueError('Plan description cannot be empty')
        return v.strip()


class ReportPeriod(BaseModel):
    """Closed reporting window ``[start, end]``."""

    start: datetime = Field(..., description="Period start (inclusive)")
    end: datetime = Field(..., description="Period end (inclusive)")

    @field_validator('start', 'end')
    @classmethod
    def validate_utc(cls, v):
        return ensure_utc(v)

    @model_validator(mode='after')
    def validate_order(self):
        if self.end < self.start:
            raise ValueError('Period end must not precede period start')
        return self
