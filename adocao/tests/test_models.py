# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for Pydantic models.
"""

import pytest
from datetime import datetime, timedelta, timezone
from pydantic import ValidationError

from adocao.models import (
    AttachmentKind,
    AttachmentMeta,
    ClosedStatus,
    Column,
    CreateEvent,
    DecisionEvent,
    DecisionOutcome,
    MoveEvent,
    OverrideEvent,
    Proposal,
    ReportPeriod,
    RequestAdjustmentsEvent,
    ResubmitProposalRequest,
    parse_event,
    sort_events,
    upsert_attachment
)

AT = datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc)


class TestEventModels:
    """Test the event union."""

    def test_parse_event_dispatches_on_type(self):
        """Test that the discriminator picks the concrete model."""
        event = parse_event({
            "type": "move",
            "at": AT,
            "actor_role": "semad_manager",
            "from_column": "protocol",
            "to_column": "semad_review"
        })

        assert isinstance(event, MoveEvent)
        assert event.from_column == Column.PROTOCOL
        assert event.to_column == Column.SEMAD_REVIEW
        assert event.note is None

    def test_naive_timestamps_are_utc(self):
        """Test naive datetimes are treated as UTC."""
        event = CreateEvent(at=datetime(2025, 1, 10, 12, 0), actor_role="adopter_pf")

        assert event.at.tzinfo is not None
        assert event.at == AT

    def test_request_adjustments_requires_note(self):
        """Test adjustments request validation."""
        with pytest.raises(ValidationError):
            RequestAdjustmentsEvent(at=AT, actor_role="semad_manager", from_column=Column.SEMAD_REVIEW, note="   ")

        with pytest.raises(ValidationError):
            RequestAdjustmentsEvent(
                at=AT, actor_role="semad_manager", from_column=Column.SEMAD_REVIEW,
                to_column=Column.DECISION, note="x"
            )

        event = RequestAdjustmentsEvent(
            at=AT, actor_role="semad_manager", from_column=Column.SEMAD_REVIEW, note="  Enviar croqui  "
        )
        assert event.note == "Enviar croqui"
        assert event.to_column == Column.ADJUSTMENTS

    def test_rejection_requires_note(self):
        """Test decision note rules."""
        with pytest.raises(ValidationError):
            DecisionEvent(at=AT, actor_role="government_manager", outcome=DecisionOutcome.REJECTED)

        approved = DecisionEvent(at=AT, actor_role="government_manager", outcome=DecisionOutcome.APPROVED)
        assert approved.note is None

    def test_override_requires_justification(self):
        """Test override note is mandatory."""
        with pytest.raises(ValidationError):
            OverrideEvent(
                at=AT, actor_role="semad_manager",
                from_column=Column.SEMAD_REVIEW, to_column=Column.ECOS_REVIEW,
                note="", gate_from=Column.SEMAD_REVIEW, gate_to=Column.ECOS_REVIEW
            )

    def test_events_are_immutable(self):
        """Test events cannot be edited after creation."""
        event = CreateEvent(at=AT, actor_role="adopter_pf")

        with pytest.raises(ValidationError):
            event.actor_role = "administrator"

    def test_sort_events_is_stable(self):
        """Test ties keep insertion order."""
        first = MoveEvent(at=AT, actor_role="a", from_column=Column.PROTOCOL, to_column=Column.SEMAD_REVIEW)
        second = MoveEvent(at=AT, actor_role="b", from_column=Column.SEMAD_REVIEW, to_column=Column.ECOS_REVIEW)
        earlier = CreateEvent(at=AT - timedelta(days=1), actor_role="c")

        assert sort_events([first, second, earlier]) == [earlier, first, second]


class TestProposalModel:
    """Test the proposal entity."""

    def _proposal(self, **overrides):
        data = {
            "protocol_code": "BETIM-2025-0001",
            "area_id": "area-1",
            "owner_role": "adopter_pf",
            "history": [CreateEvent(at=AT, actor_role="adopter_pf")],
        }
        data.update(overrides)
        return Proposal(**data)

    def test_open_proposal(self):
        """Test a fresh proposal is open and in protocol."""
        proposal = self._proposal()

        assert proposal.column == Column.PROTOCOL
        assert not proposal.is_closed()
        assert proposal.last_event_at() == AT

    def test_closure_requires_terminal_column(self):
        """Test closure marker present iff column is terminal."""
        with pytest.raises(ValidationError):
            self._proposal(column=Column.DECISION, closed_status=ClosedStatus.APPROVED)

        with pytest.raises(ValidationError):
            self._proposal(column=Column.REJECTED)

        closed = self._proposal(column=Column.TERM_SIGNED, closed_status=ClosedStatus.APPROVED, closed_at=AT)
        assert closed.is_closed()

    def test_with_changes_revalidates(self):
        """Test copies are validated as a whole."""
        proposal = self._proposal()

        moved = proposal.with_changes(column=Column.REJECTED, closed_status=ClosedStatus.REJECTED, closed_at=AT)
        assert moved.column == Column.REJECTED
        assert proposal.column == Column.PROTOCOL

        with pytest.raises(ValidationError):
            proposal.with_changes(column=Column.REJECTED)

    def test_history_round_trips_through_dump(self):
        """Test the event union survives model_dump/model_validate."""
        proposal = self._proposal(history=[
            CreateEvent(at=AT, actor_role="adopter_pf"),
            RequestAdjustmentsEvent(
                at=AT + timedelta(hours=1), actor_role="semad_manager",
                from_column=Column.PROTOCOL, note="Faltou a carta"
            ),
        ], column=Column.ADJUSTMENTS)

        restored = Proposal.model_validate(proposal.model_dump())

        assert isinstance(restored.history[1], RequestAdjustmentsEvent)
        assert restored.last_adjustments_request().note == "Faltou a carta"


class TestAttachmentsAndRequests:
    """Test attachment upsert and command models."""

    def test_upsert_replaces_same_kind(self):
        """Test attachments are keyed by kind."""
        letter = AttachmentMeta(kind=AttachmentKind.LETTER_OF_INTENT, file_name="v1.pdf")
        summary = AttachmentMeta(kind=AttachmentKind.PROJECT_SUMMARY, file_name="resumo.pdf")
        letter_v2 = AttachmentMeta(kind=AttachmentKind.LETTER_OF_INTENT, file_name="v2.pdf")

        result = upsert_attachment(upsert_attachment([letter], summary), letter_v2)

        assert [item.file_name for item in result] == ["v2.pdf", "resumo.pdf"]

    def test_resubmit_request_forbids_unknown_fields(self):
        """Test only plan and attachments can be resubmitted."""
        with pytest.raises(ValidationError):
            ResubmitProposalRequest(column="protocol")

        request = ResubmitProposalRequest(plan_description="  Novo plano ")
        assert request.plan_description == "Novo plano"

    def test_report_period_ordering(self):
        """Test period bounds validation."""
        with pytest.raises(ValidationError):
            ReportPeriod(start=AT, end=AT - timedelta(seconds=1))

        period = ReportPeriod(start=datetime(2025, 1, 1), end=datetime(2025, 1, 31))
        assert period.start.tzinfo is not None
