# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the Adote uma Área platform.
"""

# Base models
from .base import BaseEntity, generate_object_id, utc_now, ensure_utc

# Enumerations
from .enums import (
    Column,
    ClosedStatus,
    DecisionOutcome,
    EventType,
    AreaStatus,
    ActorRole,
    AttachmentKind,
    InspectionStatus
)

# Events
from .events import (
    BaseEvent,
    CreateEvent,
    MoveEvent,
    RequestAdjustmentsEvent,
    OverrideEvent,
    DecisionEvent,
    ProposalEvent,
    parse_event,
    sort_events
)

# Core entities
from .entities import (
    AttachmentMeta,
    Area,
    Inspection,
    Proposal,
    upsert_attachment
)

# Request models
from .requests import (
    CreateProposalRequest,
    MoveProposalRequest,
    DecideProposalRequest,
    ResubmitProposalRequest,
    ReportPeriod
)

# Response models
from .responses import (
    ConsolidatedReport,
    TransitionCount,
    ProductivityReport,
    ColumnSla,
    SlaReport,
    ProposalActivityRow
)

__all__ = [
    # Base models
    "BaseEntity",
    "generate_object_id",
    "utc_now",
    "ensure_utc",

    # Enumerations
    "Column",
    "ClosedStatus",
    "DecisionOutcome",
    "EventType",
    "AreaStatus",
    "ActorRole",
    "AttachmentKind",
    "InspectionStatus",

    # Events
    "BaseEvent",
    "CreateEvent",
    "MoveEvent",
    "RequestAdjustmentsEvent",
    "OverrideEvent",
    "DecisionEvent",
    "ProposalEvent",
    "parse_event",
    "sort_events",

    # Core entities
    "AttachmentMeta",
    "Area",
    "Inspection",
    "Proposal",
    "upsert_attachment",

    # Request models
    "CreateProposalRequest",
    "MoveProposalRequest",
    "DecideProposalRequest",
    "ResubmitProposalRequest",
    "ReportPeriod",

    # Response models
    "ConsolidatedReport",
    "TransitionCount",
    "ProductivityReport",
    "ColumnSla",
    "SlaReport",
    "ProposalActivityRow"
]
