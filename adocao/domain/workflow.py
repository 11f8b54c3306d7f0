# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Workflow engine for adoption proposals.

Every command follows the same shape: take the per-proposal lock (plus the
area lock when the area's availability changes), load the proposal from its
event log, validate, consult the collaborators, then append all events of the
command at once. Validation and gate failures raise before anything is
written.
"""

import logging
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, FrozenSet, Iterable, Iterator, List, Optional, Type, Union

from opentelemetry import trace
from pydantic import BaseModel, ValidationError as PydanticValidationError
from pymongo.errors import PyMongoError

from adocao.models.base import ensure_utc, utc_now
from adocao.models.entities import AttachmentMeta, Proposal, upsert_attachment
from adocao.models.enums import AreaStatus, Column, DecisionOutcome
from adocao.models.events import (
    BaseEvent, CreateEvent, DecisionEvent, MoveEvent, OverrideEvent, RequestAdjustmentsEvent
)
from adocao.models.requests import (
    CreateProposalRequest, DecideProposalRequest, MoveProposalRequest, ResubmitProposalRequest
)
from adocao.services.adapters import AdapterCaller
from adocao.services.areas import AreaRegistry
from adocao.services.audit import AuditService
from adocao.services.event_store import ProposalRepository
from adocao.services.inspections import InspectionGate
from adocao.services.locks import InMemoryLockManager, LockManager, area_lock_key, proposal_lock_key
from adocao.services.protocol import InMemoryProtocolSequence, ProtocolSequence
from .errors import GatePending, InvariantViolation, UnauthorizedOperation, ValidationError
from .normalization import RESUBMIT_NOTE
from .policy import (
    DEFAULT_GATED_TRANSITIONS, OverrideContext, OverrideDecider, RoleTransitionPolicy,
    Transition, TransitionPolicy
)
from .projection import fold

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

MIN_TICK = timedelta(microseconds=1)

_AREA_STATUS_ON_CLOSE = {
    Column.TERM_SIGNED: AreaStatus.ADOPTED,
    Column.REJECTED: AreaStatus.AVAILABLE,
}


@dataclass
class WorkflowResult:
    """Outcome of a workflow command."""
    proposal: Proposal
    events: List[BaseEvent] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.events)

    @property
    def override_applied(self) -> bool:
        return any(isinstance(event, OverrideEvent) for event in self.events)


def _validated(model: Type[BaseModel], **data: Any) -> Any:
    """Build a request model, reporting pydantic errors as workflow validation errors."""
    try:
        return model(**data)
    except PydanticValidationError as e:
        details = [f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}" for error in e.errors()]
        raise ValidationError("Invalid command input", details)


def _clean_note(note: Optional[str]) -> Optional[str]:
    if note is None:
        return None
    return note.strip() or None


class _Stamper:
    """Hands out strictly increasing timestamps for one command."""

    def __init__(self, clock: Clock, after: Optional[datetime]):
        self.clock = clock
        self.last = after

    def next(self) -> datetime:
        at = ensure_utc(self.clock())
        if self.last is not None and at <= self.last:
            at = self.last + MIN_TICK
        self.last = at
        return at


class WorkflowEngine:
    """
    Applies commands to adoption proposals.

    Args:
        repository: Proposal persistence (event log backed)
        areas: Area registry adapter
        gate: Inspection gate adapter
        policy: Which roles may move a proposal between which columns
        locks: Per-key lock manager
        protocol: Protocol code sequence
        clock: Source of "now"
        override_decider: Asked when a gated transition lacks its artifact
            and no override note was supplied
        audit: Optional audit trail
        adapters: Bounded caller for the area and gate adapters
        gated_transitions: ``(from, to)`` pairs that require the artifact
        lock_timeout: Seconds to wait for a busy lock
    """

    def __init__(
        self,
        repository: ProposalRepository,
        areas: AreaRegistry,
        gate: InspectionGate,
        policy: Optional[TransitionPolicy] = None,
        locks: Optional[LockManager] = None,
        protocol: Optional[ProtocolSequence] = None,
        clock: Clock = utc_now,
        override_decider: Optional[OverrideDecider] = None,
        audit: Optional[AuditService] = None,
        adapters: Optional[AdapterCaller] = None,
        gated_transitions: Iterable[Transition] = DEFAULT_GATED_TRANSITIONS,
        lock_timeout: Optional[float] = None
    ):
        self.repository = repository
        self.areas = areas
        self.gate = gate
        self.policy = policy or RoleTransitionPolicy()
        self.locks = locks or InMemoryLockManager()
        self.protocol = protocol or InMemoryProtocolSequence()
        self.clock = clock
        self.override_decider = override_decider
        self.audit = audit
        self.adapters = adapters or AdapterCaller()
        self.gated_transitions: FrozenSet[Transition] = frozenset(gated_transitions)
        self.lock_timeout = lock_timeout

    # Collaborator access

    @contextmanager
    def _hold(self, *keys: str) -> Iterator[None]:
        with ExitStack() as stack:
            for key in keys:
                stack.enter_context(self.locks.hold(key, timeout=self.lock_timeout))
            yield

    def _get_area(self, area_id: str):
        return self.adapters.call("areas.get_area", self.areas.get_area, area_id)

    def _set_area_status(self, area_id: str, status: AreaStatus,
                         previous: Optional[AreaStatus] = None) -> None:
        on_late_success = None
        if previous is not None:
            def on_late_success():
                self._undo_late_area_status(area_id, status, previous)
        self.adapters.call(
            "areas.set_area_status", self.areas.set_area_status, area_id, status,
            on_late_success=on_late_success
        )

    def _undo_late_area_status(self, area_id: str, written: AreaStatus, previous: AreaStatus) -> None:
        """Restore ``previous`` unless the persisted proposals now back ``written``."""
        with self._hold(area_lock_key(area_id)):
            area = self.areas.get_area(area_id)
            if area is None or area.status != written:
                return
            # An area is in review exactly while it has an open proposal.
            has_open = bool(self.repository.open_proposals_for_area(area_id))
            if (written == AreaStatus.IN_REVIEW) == has_open:
                return
            logger.warning(
                "Restoring area status written after a timed-out command",
                extra={"area_id": area_id, "written": written.value, "restored": previous.value}
            )
            self.areas.set_area_status(area_id, previous)

    def _has_artifact(self, proposal_id: str) -> bool:
        return bool(self.adapters.call("gate.has_required_artifact", self.gate.has_required_artifact, proposal_id))

    def _audit(self, proposal: Proposal, action: str, actor_role: str, from_status: Optional[str] = None,
               to_status: Optional[str] = None, message: Optional[str] = None) -> None:
        if self.audit is None:
            return
        try:
            self.audit.log_action(
                actor_role=actor_role,
                entity="proposal",
                entity_id=proposal.id,
                action=action,
                from_status=from_status,
                to_status=to_status,
                message=message,
                meta={"protocol_code": proposal.protocol_code}
            )
        except PyMongoError as e:
            # The command is already committed at this point.
            logger.warning(f"Audit entry not recorded for proposal {proposal.id}: {e}")

    def _commit(self, proposal: Proposal, events: List[BaseEvent], area_id: Optional[str] = None,
                area_status: Optional[AreaStatus] = None, previous_area_status: Optional[AreaStatus] = None,
                is_new: bool = False) -> None:
        """Apply the area side effect, then persist; undo the side effect if persisting fails."""
        if area_status is not None:
            self._set_area_status(area_id, area_status, previous=previous_area_status)
        try:
            if is_new:
                self.repository.add(proposal)
            else:
                self.repository.append(proposal, events)
        except Exception:
            if area_status is not None and previous_area_status is not None:
                logger.error(
                    "Persisting proposal failed; restoring area status",
                    extra={"proposal_id": proposal.id, "area_id": area_id, "area_status": previous_area_status.value}
                )
                self._set_area_status(area_id, previous_area_status)
            raise

    # Commands

    def create_proposal(
        self,
        area_id: str,
        plan_description: str,
        attachments: Optional[List[Union[AttachmentMeta, Dict[str, Any]]]] = None,
        owner_role: str = "adopter_pf"
    ) -> WorkflowResult:
        """
        Protocol a new proposal for an available area.

        Raises:
            ValidationError: invalid input
            InvariantViolation: area unknown, not available, or already under an open proposal
        """
        request = _validated(
            CreateProposalRequest,
            area_id=area_id,
            plan_description=plan_description,
            attachments=attachments or [],
            owner_role=owner_role
        )

        with tracer.start_as_current_span("workflow.create_proposal") as span:
            span.set_attributes({"area.id": request.area_id, "actor.role": request.owner_role})
            try:
                with self._hold(area_lock_key(request.area_id)):
                    area = self._get_area(request.area_id)
                    if area is None:
                        raise InvariantViolation(f"Area not found: {request.area_id}")
                    if area.status != AreaStatus.AVAILABLE:
                        raise InvariantViolation(
                            f"Area {request.area_id} is not available (status: {area.status.value})"
                        )
                    if self.repository.open_proposals_for_area(request.area_id):
                        raise InvariantViolation(f"Area {request.area_id} already has an open proposal")

                    at = _Stamper(self.clock, None).next()
                    attachments_list: List[AttachmentMeta] = []
                    for item in request.attachments:
                        attachments_list = upsert_attachment(attachments_list, item)
                    event = CreateEvent(at=at, actor_role=request.owner_role)
                    proposal = Proposal(
                        protocol_code=self.protocol.next_code(at),
                        area_id=area.id,
                        area_name=area.name,
                        plan_description=request.plan_description,
                        column=Column.PROTOCOL,
                        attachments=attachments_list,
                        owner_role=request.owner_role,
                        history=[event],
                        created_at=at,
                        updated_at=at
                    )
                    self._commit(
                        proposal, [event],
                        area_id=area.id,
                        area_status=AreaStatus.IN_REVIEW,
                        previous_area_status=area.status,
                        is_new=True
                    )
            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise

            span.set_attributes({"proposal.id": proposal.id, "proposal.protocol_code": proposal.protocol_code})
            logger.info(
                "Proposal created",
                extra={"proposal_id": proposal.id, "protocol_code": proposal.protocol_code, "area_id": area.id}
            )
            self._audit(proposal, "created", request.owner_role, to_status=Column.PROTOCOL.value)
            return WorkflowResult(proposal=proposal, events=[event])

    def move(
        self,
        proposal_id: str,
        to_column: Union[Column, str],
        actor_role: str,
        note: Optional[str] = None,
        override_note: Optional[str] = None
    ) -> WorkflowResult:
        """
        Move a proposal to another column.

        Moving to the current column is a no-op. Moves into ``adjustments``
        and ``rejected`` require a note; terminal moves also record the
        decision and update the area.

        Raises:
            ValidationError: target not allowed for the role, or missing note
            InvariantViolation: proposal already closed
            GatePending: gated transition without artifact nor override
        """
        request = _validated(
            MoveProposalRequest,
            to_column=to_column,
            actor_role=actor_role,
            note=note,
            override_note=override_note
        )
        with tracer.start_as_current_span("workflow.move") as span:
            span.set_attributes({
                "proposal.id": proposal_id,
                "workflow.to_column": request.to_column.value,
                "actor.role": request.actor_role
            })
            try:
                with self._hold(proposal_lock_key(proposal_id)):
                    proposal = self.repository.get(proposal_id)
                    return self._apply_move(
                        proposal, request.to_column, request.actor_role, request.note, request.override_note
                    )
            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise

    def request_adjustments(self, proposal_id: str, actor_role: str, note: str) -> WorkflowResult:
        """Send a proposal back to the adopter with guidance."""
        return self.move(proposal_id, Column.ADJUSTMENTS, actor_role, note=note)

    def decide(
        self,
        proposal_id: str,
        outcome: Union[DecisionOutcome, str],
        actor_role: str,
        note: Optional[str] = None
    ) -> WorkflowResult:
        """Approve (term signed) or reject a proposal."""
        request = _validated(DecideProposalRequest, outcome=outcome, actor_role=actor_role, note=note)
        target = Column.TERM_SIGNED if request.outcome == DecisionOutcome.APPROVED else Column.REJECTED
        return self.move(proposal_id, target, request.actor_role, note=request.note)

    def resume_review(self, proposal_id: str, actor_role: str, note: Optional[str] = None) -> WorkflowResult:
        """
        Return a proposal in ``adjustments`` to the review column that asked
        for the adjustments (``semad_review`` when unknown).
        """
        with tracer.start_as_current_span("workflow.resume_review") as span:
            span.set_attributes({"proposal.id": proposal_id, "actor.role": actor_role})
            try:
                with self._hold(proposal_lock_key(proposal_id)):
                    proposal = self.repository.get(proposal_id)
                    if proposal.column != Column.ADJUSTMENTS:
                        raise InvariantViolation(
                            f"Proposal {proposal.protocol_code} is not awaiting adjustments"
                        )
                    requested = proposal.last_adjustments_request()
                    target = Column.SEMAD_REVIEW
                    if requested is not None and requested.from_column in (Column.SEMAD_REVIEW, Column.ECOS_REVIEW):
                        target = requested.from_column
                    span.set_attribute("workflow.to_column", target.value)
                    return self._apply_move(proposal, target, actor_role, _clean_note(note), None)
            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise

    def resubmit_after_adjustments(
        self,
        proposal_id: str,
        updated_fields: Union[ResubmitProposalRequest, Dict[str, Any], None],
        actor_role: str
    ) -> WorkflowResult:
        """
        Owner answers an adjustments request: merge the updated plan and
        documents and send the proposal back to ``protocol``.

        Raises:
            UnauthorizedOperation: caller is not the proposal owner
            InvariantViolation: proposal is not in ``adjustments``
        """
        if isinstance(updated_fields, ResubmitProposalRequest):
            changes = updated_fields
        else:
            changes = _validated(ResubmitProposalRequest, **(updated_fields or {}))

        with tracer.start_as_current_span("workflow.resubmit_after_adjustments") as span:
            span.set_attributes({"proposal.id": proposal_id, "actor.role": actor_role})
            try:
                with self._hold(proposal_lock_key(proposal_id)):
                    proposal = self.repository.get(proposal_id)
                    if actor_role != proposal.owner_role:
                        raise UnauthorizedOperation(
                            f"Only the proposal owner may resubmit {proposal.protocol_code}"
                        )
                    if proposal.column != Column.ADJUSTMENTS:
                        raise InvariantViolation(
                            f"Proposal {proposal.protocol_code} is not awaiting adjustments"
                        )

                    attachments = list(proposal.attachments)
                    for item in changes.attachments:
                        attachments = upsert_attachment(attachments, item)

                    stamper = _Stamper(self.clock, proposal.last_event_at())
                    event = MoveEvent(
                        at=stamper.next(),
                        actor_role=actor_role,
                        from_column=Column.ADJUSTMENTS,
                        to_column=Column.PROTOCOL,
                        note=RESUBMIT_NOTE
                    )
                    updated = self._with_events(
                        proposal, [event],
                        plan_description=changes.plan_description or proposal.plan_description,
                        attachments=attachments
                    )
                    self._commit(updated, [event])
            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise

            logger.info(
                "Proposal resubmitted after adjustments",
                extra={"proposal_id": proposal_id, "protocol_code": updated.protocol_code}
            )
            self._audit(
                updated, "resubmitted", actor_role,
                from_status=Column.ADJUSTMENTS.value, to_status=Column.PROTOCOL.value, message=RESUBMIT_NOTE
            )
            return WorkflowResult(proposal=updated, events=[event])

    # Internals

    def _with_events(self, proposal: Proposal, events: List[BaseEvent], **changes: Any) -> Proposal:
        """Copy of ``proposal`` with ``events`` appended and the projection refreshed."""
        history = list(proposal.history) + list(events)
        projection = fold(history)
        return proposal.with_changes(
            history=history,
            column=projection.column,
            closed_status=projection.closed_status,
            closed_at=projection.closed_at,
            updated_at=events[-1].at,
            **changes
        )

    def _already_overridden(self, proposal: Proposal, gate: Transition) -> bool:
        return any(
            isinstance(event, OverrideEvent) and (event.gate_from, event.gate_to) == gate
            for event in proposal.history
        )

    def _resolve_override(self, proposal: Proposal, from_column: Column, to_column: Column,
                          actor_role: str, override_note: Optional[str]) -> Optional[str]:
        """
        Justification for bypassing the gate, or None when no override is needed.

        Raises:
            GatePending: artifact missing, no prior override and no approved note
        """
        gate = (from_column, to_column)
        if gate not in self.gated_transitions:
            return None
        if self._has_artifact(proposal.id):
            return None
        if self._already_overridden(proposal, gate):
            logger.info(
                "Gate already overridden for this transition",
                extra={"proposal_id": proposal.id, "gate_from": from_column.value, "gate_to": to_column.value}
            )
            return None

        justification = _clean_note(override_note)
        context = OverrideContext(
            proposal_id=proposal.id,
            protocol_code=proposal.protocol_code,
            actor_role=actor_role,
            from_column=from_column,
            to_column=to_column
        )
        if justification is None and self.override_decider is not None:
            justification = self.override_decider(context).justification
        if justification is None:
            raise GatePending(context.prompt, context)
        return justification

    def _apply_move(self, proposal: Proposal, to_column: Column, actor_role: str,
                    note: Optional[str], override_note: Optional[str]) -> WorkflowResult:
        from_column = proposal.column
        note = _clean_note(note)

        if to_column == from_column:
            return WorkflowResult(proposal=proposal)
        if proposal.is_closed():
            raise InvariantViolation(
                f"Proposal {proposal.protocol_code} is closed ({proposal.closed_status.value})"
            )
        if to_column not in self.policy.allowed_targets(actor_role, from_column):
            raise ValidationError(
                f"Role {actor_role} may not move a proposal from {from_column.value} to {to_column.value}",
                [f"to_column: {to_column.value} not allowed"]
            )
        if to_column == Column.ADJUSTMENTS and note is None:
            raise ValidationError("A note is required when requesting adjustments", ["note: required"])
        if to_column == Column.REJECTED and note is None:
            raise ValidationError("A reason is required when rejecting a proposal", ["note: required"])

        justification = self._resolve_override(proposal, from_column, to_column, actor_role, override_note)

        area_status = _AREA_STATUS_ON_CLOSE.get(to_column)
        keys = [area_lock_key(proposal.area_id)] if area_status is not None else []
        with self._hold(*keys):
            previous_area_status = None
            if area_status is not None:
                area = self._get_area(proposal.area_id)
                if area is None:
                    raise InvariantViolation(f"Area not found: {proposal.area_id}")
                previous_area_status = area.status

            stamper = _Stamper(self.clock, proposal.last_event_at())
            events: List[BaseEvent] = []
            if justification is not None:
                events.append(OverrideEvent(
                    at=stamper.next(),
                    actor_role=actor_role,
                    from_column=from_column,
                    to_column=to_column,
                    note=justification,
                    gate_from=from_column,
                    gate_to=to_column
                ))
            events.append(MoveEvent(
                at=stamper.next(),
                actor_role=actor_role,
                from_column=from_column,
                to_column=to_column,
                note=note
            ))
            if to_column == Column.ADJUSTMENTS:
                events.append(RequestAdjustmentsEvent(
                    at=stamper.next(),
                    actor_role=actor_role,
                    from_column=from_column,
                    note=note
                ))
            elif to_column in _AREA_STATUS_ON_CLOSE:
                outcome = DecisionOutcome.APPROVED if to_column == Column.TERM_SIGNED else DecisionOutcome.REJECTED
                events.append(DecisionEvent(
                    at=stamper.next(),
                    actor_role=actor_role,
                    outcome=outcome,
                    note=note
                ))

            updated = self._with_events(proposal, events)
            self._commit(
                updated, events,
                area_id=proposal.area_id,
                area_status=area_status,
                previous_area_status=previous_area_status
            )

        logger.info(
            "Proposal moved",
            extra={
                "proposal_id": proposal.id,
                "from_column": from_column.value,
                "to_column": to_column.value,
                "actor_role": actor_role,
                "override": justification is not None
            }
        )
        if justification is not None:
            self._audit(updated, "override", actor_role, from_column.value, to_column.value, justification)
        action = "adjustments_requested" if to_column == Column.ADJUSTMENTS else "status_changed"
        self._audit(updated, action, actor_role, from_column.value, to_column.value, note)
        return WorkflowResult(proposal=updated, events=events)
