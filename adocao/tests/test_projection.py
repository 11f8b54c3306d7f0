# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Projection tests, including replay-determinism properties.
"""

from datetime import datetime, timedelta, timezone

from hypothesis import given, settings, HealthCheck, strategies as st

from adocao.domain.errors import GatePending, InvariantViolation, UnauthorizedOperation, ValidationError
from adocao.domain.normalization import normalize_proposal
from adocao.domain.projection import Projection, apply_event, fold
from adocao.domain.workflow import WorkflowEngine
from adocao.models.entities import Area
from adocao.models.enums import AreaStatus, ClosedStatus, Column, DecisionOutcome
from adocao.models.events import CreateEvent, DecisionEvent, MoveEvent, OverrideEvent, RequestAdjustmentsEvent
from adocao.services.adapters import AdapterCaller
from adocao.services.areas import InMemoryAreaRegistry
from adocao.services.event_store import InMemoryProposalStore, ProposalRepository
from adocao.services.inspections import InMemoryInspectionGate

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _at(hours: int) -> datetime:
    return T0 + timedelta(hours=hours)


class TestFold:
    """Test folding of event sequences."""

    def test_empty_log(self):
        assert fold([]) == Projection()

    def test_moves_and_adjustments(self):
        projection = fold([
            CreateEvent(at=_at(0), actor_role="adopter_pf"),
            MoveEvent(at=_at(1), actor_role="semad_manager", from_column=Column.PROTOCOL, to_column=Column.SEMAD_REVIEW),
            MoveEvent(at=_at(2), actor_role="semad_manager", from_column=Column.SEMAD_REVIEW, to_column=Column.ADJUSTMENTS, note="x"),
            RequestAdjustmentsEvent(at=_at(3), actor_role="semad_manager", from_column=Column.SEMAD_REVIEW, note="x"),
        ])

        assert projection.column == Column.ADJUSTMENTS
        assert not projection.is_closed
        assert projection.last_event_at == _at(3)

    def test_terminal_move_and_decision_close_once(self):
        """Test closed_at is the first terminal event, not the companion decision."""
        projection = fold([
            CreateEvent(at=_at(0), actor_role="adopter_pf"),
            MoveEvent(at=_at(1), actor_role="government_manager", from_column=Column.DECISION, to_column=Column.TERM_SIGNED),
            DecisionEvent(at=_at(2), actor_role="government_manager", outcome=DecisionOutcome.APPROVED),
        ])

        assert projection.column == Column.TERM_SIGNED
        assert projection.closed_status == ClosedStatus.APPROVED
        assert projection.closed_at == _at(1)

    def test_decision_alone_closes(self):
        """Test legacy logs that only carry the decision event."""
        projection = fold([
            CreateEvent(at=_at(0), actor_role="adopter_pf"),
            DecisionEvent(at=_at(5), actor_role="government_manager", outcome=DecisionOutcome.REJECTED, note="Fora do perímetro"),
        ])

        assert projection.column == Column.REJECTED
        assert projection.closed_status == ClosedStatus.REJECTED

    def test_override_does_not_change_column(self):
        state = apply_event(Projection(column=Column.SEMAD_REVIEW, last_event_at=_at(0)), OverrideEvent(
            at=_at(1), actor_role="semad_manager", from_column=Column.SEMAD_REVIEW, to_column=Column.ECOS_REVIEW,
            note="Vistoria agendada", gate_from=Column.SEMAD_REVIEW, gate_to=Column.ECOS_REVIEW
        ))

        assert state.column == Column.SEMAD_REVIEW
        assert state.last_event_at == _at(1)


class _StepClock:
    def __init__(self):
        self.now = T0

    def __call__(self):
        self.now = self.now + timedelta(minutes=30)
        return self.now


ACTORS = ["semad_manager", "ecos_manager", "government_manager", "administrator", "adopter_pf"]

commands = st.lists(
    st.tuples(
        st.sampled_from(["move", "resubmit", "resume"]),
        st.sampled_from(list(Column)),
        st.sampled_from(ACTORS),
        st.sampled_from([None, "", "Ajustar plano"]),
        st.sampled_from([None, "Vistoria agendada"]),
    ),
    max_size=25
)


@settings(max_examples=60, deadline=None, suppress_health_check=[HealthCheck.too_slow])
@given(commands)
def test_replay_reproduces_column_and_closure(steps):
    """Any command sequence leaves a log whose fold equals the stored state."""
    areas = InMemoryAreaRegistry([Area(id="area-1", name="Praça", status=AreaStatus.AVAILABLE)])
    store = InMemoryProposalStore()
    engine = WorkflowEngine(
        repository=ProposalRepository(store),
        areas=areas,
        gate=InMemoryInspectionGate(),
        clock=_StepClock(),
        adapters=AdapterCaller(timeout_seconds=None)
    )
    proposal = engine.create_proposal("area-1", "Plano", owner_role="adopter_pf").proposal

    for kind, to_column, actor, note, override_note in steps:
        try:
            if kind == "move":
                engine.move(proposal.id, to_column, actor, note=note, override_note=override_note)
            elif kind == "resubmit":
                engine.resubmit_after_adjustments(proposal.id, {}, actor)
            else:
                engine.resume_review(proposal.id, actor, note=note)
        except (ValidationError, InvariantViolation, UnauthorizedOperation, GatePending):
            pass

        document = store.read(proposal.id)
        replayed = normalize_proposal(document).proposal
        projection = fold(replayed.history)

        assert document["column"] == projection.column.value
        assert document["closed_status"] == (projection.closed_status.value if projection.closed_status else None)
        assert (projection.closed_status is not None) == projection.column.is_terminal
        timestamps = [event.at for event in replayed.history]
        assert timestamps == sorted(timestamps)
        assert len(set(timestamps)) == len(timestamps)

    area_status = areas.get_area("area-1").status
    final = fold(normalize_proposal(store.read(proposal.id)).proposal.history)
    expected_area = {
        Column.TERM_SIGNED: AreaStatus.ADOPTED,
        Column.REJECTED: AreaStatus.AVAILABLE,
    }.get(final.column, AreaStatus.IN_REVIEW)
    assert area_status == expected_area
