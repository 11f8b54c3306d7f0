# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Workflow exceptions.

Every command raises one of these before anything is appended to a
proposal's event log, so callers can retry with corrected input.
"""

from typing import List, Optional


class WorkflowError(Exception):
    """Base class for workflow exceptions."""

    def __init__(self, message: str, error_type: str = "workflow-error"):
        super().__init__(message)
        self.message = message
        self.error_type = error_type


class ValidationError(WorkflowError):
    """Missing mandatory note or target column not allowed."""

    def __init__(self, message: str, validation_errors: List[str] = None):
        super().__init__(message, "validation-error")
        self.validation_errors = validation_errors or []


class InvariantViolation(WorkflowError):
    """Area unavailable, area already under review, or proposal closed."""

    def __init__(self, message: str):
        super().__init__(message, "invariant-violation")


class UnauthorizedOperation(WorkflowError):
    """Actor is not allowed to run the command on this proposal."""

    def __init__(self, message: str):
        super().__init__(message, "unauthorized-operation")


class ProposalNotFound(WorkflowError):
    """No proposal with the given identifier."""

    def __init__(self, proposal_id: str):
        super().__init__(f"Proposal not found: {proposal_id}", "proposal-not-found")
        self.proposal_id = proposal_id


class GatePending(WorkflowError):
    """
    Gated transition without the prerequisite artifact.

    Not a hard failure: the caller must confirm and supply an override
    justification to proceed. ``context`` describes the blocked transition.
    """

    def __init__(self, message: str, context: Optional[object] = None):
        super().__init__(message, "gate-pending")
        self.context = context


class AdapterTimeout(WorkflowError):
    """A collaborator call did not return within its bound."""

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(
            f"Adapter call '{operation}' did not return within {timeout_seconds}s",
            "adapter-timeout"
        )
        self.operation = operation
        self.timeout_seconds = timeout_seconds


class LockTimeout(WorkflowError):
    """Another command kept the proposal or area locked past the bound."""

    def __init__(self, key: str, timeout_seconds: float):
        super().__init__(
            f"Could not acquire lock '{key}' within {timeout_seconds}s",
            "lock-timeout"
        )
        self.key = key
        self.timeout_seconds = timeout_seconds
