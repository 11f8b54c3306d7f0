# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the Adote uma Área platform.
"""

from enum import Enum


class Column(str, Enum):
    """Kanban column (workflow state) of an adoption proposal."""
    PROTOCOL = "protocol"
    SEMAD_REVIEW = "semad_review"
    ECOS_REVIEW = "ecos_review"
    ADJUSTMENTS = "adjustments"
    DECISION = "decision"
    TERM_SIGNED = "term_signed"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (Column.TERM_SIGNED, Column.REJECTED)


class ClosedStatus(str, Enum):
    """Closure marker set on terminal transitions."""
    APPROVED = "approved"
    REJECTED = "rejected"


class DecisionOutcome(str, Enum):
    """Outcome carried by a decision event."""
    APPROVED = "approved"
    REJECTED = "rejected"


class EventType(str, Enum):
    """Proposal event kinds."""
    CREATE = "create"
    MOVE = "move"
    REQUEST_ADJUSTMENTS = "request_adjustments"
    OVERRIDE = "override"
    DECISION = "decision"


class AreaStatus(str, Enum):
    """Availability of a public area."""
    AVAILABLE = "available"
    IN_REVIEW = "in_review"
    ADOPTED = "adopted"


class ActorRole(str, Enum):
    """Acting roles known to the default transition policy."""
    ADOPTER_PF = "adopter_pf"
    ADOPTER_PJ = "adopter_pj"
    SEMAD_MANAGER = "semad_manager"
    ECOS_MANAGER = "ecos_manager"
    GOVERNMENT_MANAGER = "government_manager"
    ADMINISTRATOR = "administrator"
    SYSTEM = "system"


class AttachmentKind(str, Enum):
    """Document kinds attached to a proposal (metadata only)."""
    LETTER_OF_INTENT = "letter_of_intent"
    PROJECT_SUMMARY = "project_summary"


class InspectionStatus(str, Enum):
    """Inspection lifecycle as seen by the gate adapter."""
    SCHEDULED = "scheduled"
    PERFORMED = "performed"
    REPORT_ISSUED = "report_issued"
    CANCELLED = "cancelled"
