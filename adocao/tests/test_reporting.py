# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for period reports.
"""

from datetime import datetime, timedelta, timezone

import pytest

from adocao.domain.normalization import normalize_proposal
from adocao.domain.projection import fold
from adocao.domain.reporting import (
    Segment,
    actor_productivity,
    adjustments_in_period,
    column_segments,
    column_sla,
    consolidated_counts,
    created_in_period,
    other_review_entries_in_period,
    percentile,
    terms_signed_in_period
)
from adocao.models.entities import Proposal
from adocao.models.enums import Column, DecisionOutcome
from adocao.models.events import CreateEvent, DecisionEvent, MoveEvent, OverrideEvent, RequestAdjustmentsEvent
from adocao.models.requests import ReportPeriod
from adocao.services.reporting import ReportingService

T0 = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


def _days(n: float):
    return T0 + timedelta(days=n)


def _proposal(proposal_id, events, area_id="area-1"):
    projection = fold(events)
    return Proposal(
        id=proposal_id,
        protocol_code=f"BETIM-2025-{proposal_id}",
        area_id=area_id,
        owner_role="adopter_pf",
        history=events,
        column=projection.column,
        closed_status=projection.closed_status,
        closed_at=projection.closed_at,
        created_at=events[0].at
    )


def _create(day):
    return CreateEvent(at=_days(day), actor_role="adopter_pf")


def _move(day, from_column, to_column, actor="semad_manager", note=None):
    return MoveEvent(at=_days(day), actor_role=actor, from_column=from_column, to_column=to_column, note=note)


@pytest.fixture
def reviewed_proposal(engine, clock, store):
    """Created at day 0, SEMAD review at day 10, adjustments requested at day 13."""
    proposal = engine.create_proposal("area-1", "Plano de manutenção").proposal
    clock.advance(days=10)
    engine.move(proposal.id, Column.SEMAD_REVIEW, "semad_manager")
    clock.advance(days=3)
    engine.request_adjustments(proposal.id, "semad_manager", "Enviar croqui")
    return normalize_proposal(store.read(proposal.id)).proposal


class TestConsolidatedCounts:
    """Test event counts for a period."""

    def test_review_round_trip(self, reviewed_proposal):
        report = consolidated_counts([reviewed_proposal], _days(0), _days(30))

        assert report.protocols_created == 1
        assert report.entered_semad_review == 1
        assert report.adjustments_requested == 1
        assert report.terms_signed == 0
        assert report.rejected == 0

    def test_window_bounds_are_inclusive(self, reviewed_proposal):
        report = consolidated_counts([reviewed_proposal], _days(10), _days(10))

        assert report.protocols_created == 0
        assert report.entered_semad_review == 1

    def test_terminal_proposals_counted_once(self):
        """Test move plus decision count as one signed term."""
        approved = _proposal("0001", [
            _create(0),
            _move(1, Column.PROTOCOL, Column.SEMAD_REVIEW),
            _move(2, Column.SEMAD_REVIEW, Column.ECOS_REVIEW),
            _move(3, Column.ECOS_REVIEW, Column.DECISION, actor="ecos_manager"),
            _move(4, Column.DECISION, Column.TERM_SIGNED, actor="government_manager"),
            DecisionEvent(at=_days(4.001), actor_role="government_manager", outcome=DecisionOutcome.APPROVED),
        ])
        rejected = _proposal("0002", [
            _create(0),
            DecisionEvent(
                at=_days(5), actor_role="government_manager", outcome=DecisionOutcome.REJECTED, note="Sem viabilidade"
            ),
        ], area_id="area-2")

        report = consolidated_counts([approved, rejected], _days(0), _days(10))

        assert report.terms_signed == 1
        assert report.rejected == 1
        assert report.entered_ecos_review == 1
        assert report.entered_decision == 1
        assert report.protocols_created == 2

    def test_move_without_companion_request_counts(self):
        """Test older logs that only recorded the move into adjustments."""
        proposal = _proposal("0003", [
            _create(0),
            _move(1, Column.PROTOCOL, Column.ADJUSTMENTS, note="Faltou carta"),
        ])

        assert consolidated_counts([proposal], _days(0), _days(2)).adjustments_requested == 1

    def test_inverted_window_is_empty(self, reviewed_proposal):
        report = consolidated_counts([reviewed_proposal], _days(30), _days(0))

        assert report.protocols_created == 0
        assert report.entered_semad_review == 0

    def test_legacy_document(self, legacy_proposal_document):
        """Test malformed legacy events are ignored rather than fatal."""
        proposal = normalize_proposal(legacy_proposal_document).proposal

        report = consolidated_counts([proposal], _days(-400), _days(30))

        assert report.protocols_created == 1
        assert report.entered_semad_review == 1
        assert report.entered_ecos_review == 1
        assert report.entered_decision == 0


class TestProductivity:
    """Test per-actor productivity."""

    def test_counts_and_transition_order(self):
        first = _proposal("0001", [
            _create(0),
            _move(1, Column.PROTOCOL, Column.SEMAD_REVIEW),
            OverrideEvent(
                at=_days(2), actor_role="semad_manager", from_column=Column.SEMAD_REVIEW,
                to_column=Column.ECOS_REVIEW, note="Vistoria agendada",
                gate_from=Column.SEMAD_REVIEW, gate_to=Column.ECOS_REVIEW
            ),
            _move(2.001, Column.SEMAD_REVIEW, Column.ECOS_REVIEW),
        ])
        second = _proposal("0002", [
            _create(0),
            _move(1, Column.PROTOCOL, Column.SEMAD_REVIEW),
            _move(3, Column.SEMAD_REVIEW, Column.ADJUSTMENTS, note="Anexar croqui"),
            RequestAdjustmentsEvent(
                at=_days(3.001), actor_role="semad_manager", from_column=Column.SEMAD_REVIEW, note="Anexar croqui"
            ),
        ], area_id="area-2")
        third = _proposal("0003", [
            _create(0),
            _move(1, Column.PROTOCOL, Column.SEMAD_REVIEW, actor="administrator"),
        ], area_id="area-3")

        report = actor_productivity([first, second, third], "semad_manager", _days(0), _days(10))

        assert report.total_moves == 4
        assert report.total_adjustments_requested == 1
        assert report.total_overrides == 1
        assert report.proposals_touched == 2
        assert [(item.key, item.count) for item in report.transitions] == [
            ("protocol→semad_review", 2),
            ("semad_review→adjustments", 1),
            ("semad_review→ecos_review", 1),
        ]

    def test_other_actors_and_window(self, reviewed_proposal):
        assert actor_productivity([reviewed_proposal], "ecos_manager", _days(0), _days(30)).total_moves == 0
        assert actor_productivity([reviewed_proposal], "semad_manager", _days(11), _days(30)).total_moves == 1
        assert actor_productivity([reviewed_proposal], "semad_manager", _days(30), _days(0)).transitions == []


class TestSla:
    """Test column residency statistics."""

    def test_percentile(self):
        samples = [1, 2, 3, 4, 5]

        assert percentile(samples, 0.5) == 3
        assert percentile(samples, 0.8) == 4
        assert percentile(samples, 0.95) == 4
        assert percentile(samples, 1.5) == 5
        assert percentile(samples, -1) == 1
        assert percentile([], 0.5) is None

    def test_segments_start_at_creation(self, reviewed_proposal):
        segments = column_segments(reviewed_proposal)

        assert segments[0] == Segment(Column.PROTOCOL, _days(0), _days(10))
        assert segments[1].column == Column.SEMAD_REVIEW
        assert segments[-1].column == Column.ADJUSTMENTS
        assert segments[-1].end is None

    def test_closed_segments(self, reviewed_proposal):
        report = column_sla([reviewed_proposal], _days(0), _days(30))

        protocol = report.by_column[Column.PROTOCOL]
        assert protocol.p50 == timedelta(days=10)
        assert protocol.censored == 0
        semad = report.by_column[Column.SEMAD_REVIEW]
        assert timedelta(days=3) <= semad.p50 < timedelta(days=3, seconds=1)
        assert report.by_column[Column.ADJUSTMENTS].censored == 1
        assert report.by_column[Column.DECISION].count == 0
        assert report.by_column[Column.DECISION].p50 is None

    def test_window_ending_mid_segment_is_censored(self, reviewed_proposal):
        report = column_sla([reviewed_proposal], _days(0), _days(11))

        semad = report.by_column[Column.SEMAD_REVIEW]
        assert semad.count == 1
        assert semad.censored == 1
        assert semad.p50 == timedelta(days=1)
        assert report.by_column[Column.ADJUSTMENTS].count == 0

    def test_window_starting_mid_segment_is_clipped(self, reviewed_proposal):
        report = column_sla([reviewed_proposal], _days(5), _days(30))

        assert report.by_column[Column.PROTOCOL].p50 == timedelta(days=5)

    def test_violation_rate(self):
        proposals = [
            _proposal(f"{index:04d}", [
                _create(0),
                _move(days, Column.PROTOCOL, Column.SEMAD_REVIEW),
            ], area_id=f"area-{index}")
            for index, days in enumerate([1, 2, 3, 4], start=1)
        ]

        report = column_sla(
            proposals, _days(0), _days(30),
            targets={Column.PROTOCOL: timedelta(days=2)},
            columns=[Column.PROTOCOL]
        )

        stats = report.by_column[Column.PROTOCOL]
        assert list(report.by_column) == [Column.PROTOCOL]
        assert stats.count == 4
        assert stats.violation_rate == 0.5
        assert stats.p50 == timedelta(days=2)
        assert stats.target == timedelta(days=2)

    def test_inverted_window(self, reviewed_proposal):
        report = column_sla([reviewed_proposal], _days(30), _days(0))

        assert report.by_column == {}
        assert report.samples == 0


class TestDetailListings:
    """Test the per-proposal listings."""

    @pytest.fixture
    def proposals(self):
        signed = _proposal("0001", [
            _create(1),
            _move(2, Column.PROTOCOL, Column.SEMAD_REVIEW),
            _move(3, Column.SEMAD_REVIEW, Column.ECOS_REVIEW),
            _move(4, Column.ECOS_REVIEW, Column.DECISION, actor="ecos_manager"),
            _move(5, Column.DECISION, Column.TERM_SIGNED, actor="government_manager"),
            DecisionEvent(at=_days(5.001), actor_role="government_manager", outcome=DecisionOutcome.APPROVED),
        ])
        adjusted = _proposal("0002", [
            _create(2),
            _move(3, Column.PROTOCOL, Column.ADJUSTMENTS, note="Primeiro pedido"),
            RequestAdjustmentsEvent(
                at=_days(3.001), actor_role="semad_manager", from_column=Column.PROTOCOL, note="Primeiro pedido"
            ),
            _move(4, Column.ADJUSTMENTS, Column.PROTOCOL, actor="adopter_pf"),
            _move(6, Column.PROTOCOL, Column.ADJUSTMENTS, note="Segundo pedido"),
            RequestAdjustmentsEvent(
                at=_days(6.001), actor_role="semad_manager", from_column=Column.PROTOCOL, note="Segundo pedido"
            ),
        ], area_id="area-2")
        return [signed, adjusted]

    def test_created_oldest_first(self, proposals):
        rows = created_in_period(proposals, _days(0), _days(10))

        assert [row.protocol_code for row in rows] == ["BETIM-2025-0001", "BETIM-2025-0002"]

    def test_latest_adjustments_request(self, proposals):
        rows = adjustments_in_period(proposals, _days(0), _days(10))

        assert len(rows) == 1
        assert rows[0].note == "Segundo pedido"
        assert rows[0].column == Column.ADJUSTMENTS

    def test_terms_and_other_reviews(self, proposals):
        terms = terms_signed_in_period(proposals, _days(0), _days(10))
        reviews = other_review_entries_in_period(proposals, _days(0), _days(10))

        assert [row.proposal_id for row in terms] == ["0001"]
        assert reviews[0].to_column == Column.DECISION
        assert terms_signed_in_period(proposals, _days(0), _days(4)) == []

    def test_inverted_window(self, proposals):
        assert created_in_period(proposals, _days(10), _days(0)) == []


class TestReportingService:
    """Test the service over a store."""

    def test_backfill_is_not_persisted(self, store):
        store.insert({
            "id": "old-1",
            "protocol_code": "BETIM-2023-0042",
            "area_id": "area-2",
            "owner_role": "adopter_pf",
            "created_at": T0.isoformat(),
            "history": [],
        })
        service = ReportingService(store)

        report = service.consolidated(_days(-1), _days(1))

        assert report.protocols_created == 1
        assert store.read("old-1")["history"] == []

    def test_period_report(self, store, reviewed_proposal):
        service = ReportingService(store, {Column.SEMAD_REVIEW: timedelta(days=2)})

        result = service.for_period(ReportPeriod(start=_days(0), end=_days(30)))

        assert result["consolidated"].adjustments_requested == 1
        assert list(result["sla"].by_column) == [Column.SEMAD_REVIEW]
        assert result["sla"].by_column[Column.SEMAD_REVIEW].violation_rate == 1.0

    def test_activity_and_productivity(self, store, reviewed_proposal):
        service = ReportingService(store)

        activity = service.activity(_days(0), _days(30))
        productivity = service.productivity("semad_manager", _days(0), _days(30))

        assert len(activity["created"]) == 1
        assert len(activity["adjustments"]) == 1
        assert activity["terms_signed"] == []
        assert productivity.total_adjustments_requested == 1
        assert service.sla(_days(0), _days(30)).samples == 3
