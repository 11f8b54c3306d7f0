# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Report models produced by the reporting engine.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from .enums import Column


class ConsolidatedReport(BaseModel):
    """Event counts for a period."""

    protocols_created: int = Field(default=0, description="create events")
    entered_semad_review: int = Field(default=0, description="moves into semad_review")
    entered_ecos_review: int = Field(default=0, description="moves into ecos_review")
    entered_decision: int = Field(default=0, description="moves into decision")
    adjustments_requested: int = Field(default=0, description="request_adjustments events")
    terms_signed: int = Field(default=0, description="Distinct proposals approved")
    rejected: int = Field(default=0, description="Distinct proposals rejected")


class TransitionCount(BaseModel):
    """Frequency of one ``from→to`` transition."""

    key: str = Field(..., description="Transition label, e.g. protocol→semad_review")
    count: int = Field(..., ge=0)


class ProductivityReport(BaseModel):
    """Per-actor productivity for a period."""

    actor_role: str
    total_moves: int = 0
    total_adjustments_requested: int = 0
    total_overrides: int = 0
    proposals_touched: int = 0
    transitions: List[TransitionCount] = Field(default_factory=list)


class ColumnSla(BaseModel):
    """Residency statistics for one column."""

    column: Column
    count: int = Field(default=0, description="Number of duration samples")
    censored: int = Field(default=0, description="Samples still open at period end")
    p50: Optional[timedelta] = None
    p80: Optional[timedelta] = None
    p95: Optional[timedelta] = None
    target: Optional[timedelta] = None
    violation_rate: Optional[float] = Field(None, description="Fraction of samples above target")


class SlaReport(BaseModel):
    """Residency statistics for every configured column."""

    by_column: Dict[Column, ColumnSla] = Field(default_factory=dict)
    samples: int = Field(default=0, description="Total samples across columns")


class ProposalActivityRow(BaseModel):
    """One proposal with the event that put it on a detail listing."""

    proposal_id: str
    protocol_code: str
    area_id: str
    area_name: str
    column: Column
    at: datetime
    actor_role: str
    note: Optional[str] = None
    to_column: Optional[Column] = None
