# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Domain logic package for the Adote uma Área platform.

Projection, normalization, policy and reporting are pure functions over
proposal event logs. The workflow engine (``adocao.domain.workflow``) is the
only part that talks to collaborators and is imported explicitly.
"""

from .errors import (
    WorkflowError,
    ValidationError,
    InvariantViolation,
    UnauthorizedOperation,
    ProposalNotFound,
    GatePending,
    AdapterTimeout,
    LockTimeout
)
from .projection import Projection, apply_event, fold
from .policy import (
    DEFAULT_GATED_TRANSITIONS,
    OverrideContext,
    OverrideDecision,
    RoleTransitionPolicy,
    TransitionPolicy
)

__all__ = [
    "WorkflowError",
    "ValidationError",
    "InvariantViolation",
    "UnauthorizedOperation",
    "ProposalNotFound",
    "GatePending",
    "AdapterTimeout",
    "LockTimeout",
    "Projection",
    "apply_event",
    "fold",
    "DEFAULT_GATED_TRANSITIONS",
    "OverrideContext",
    "OverrideDecision",
    "RoleTransitionPolicy",
    "TransitionPolicy"
]
