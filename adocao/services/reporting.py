# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Reporting service.

Reads a snapshot of every proposal (copies, never live documents), normalizes
it in memory and hands it to the pure report functions. Nothing is written
back: backfilled ``create`` events only exist for the duration of the report.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Mapping, Optional

from opentelemetry import trace

from adocao.domain import reporting
from adocao.domain.normalization import normalize_proposals
from adocao.models.entities import Proposal
from adocao.models.enums import Column
from adocao.models.requests import ReportPeriod
from adocao.models.responses import ConsolidatedReport, ProductivityReport, ProposalActivityRow, SlaReport
from .event_store import ProposalStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class ReportingService:
    """Period reports over the proposal store."""

    def __init__(self, store: ProposalStore, sla_targets: Optional[Mapping[Column, timedelta]] = None):
        self.store = store
        self.sla_targets: Dict[Column, timedelta] = (
            reporting.default_sla_targets() if sla_targets is None else dict(sla_targets)
        )

    def load_proposals(self) -> List[Proposal]:
        """Normalized copies of every stored proposal."""
        with tracer.start_as_current_span("reporting.load_proposals") as span:
            proposals = normalize_proposals(self.store.snapshot())
            span.set_attribute("proposals.count", len(proposals))
            return proposals

    def consolidated(self, start: datetime, end: datetime) -> ConsolidatedReport:
        with tracer.start_as_current_span("reporting.consolidated") as span:
            span.set_attributes({"period.start": start.isoformat(), "period.end": end.isoformat()})
            return reporting.consolidated_counts(self.load_proposals(), start, end)

    def productivity(self, actor_role: str, start: datetime, end: datetime) -> ProductivityReport:
        with tracer.start_as_current_span("reporting.productivity") as span:
            span.set_attributes({"actor.role": actor_role, "period.start": start.isoformat()})
            return reporting.actor_productivity(self.load_proposals(), actor_role, start, end)

    def sla(self, start: datetime, end: datetime) -> SlaReport:
        with tracer.start_as_current_span("reporting.sla") as span:
            report = reporting.column_sla(self.load_proposals(), start, end, self.sla_targets)
            span.set_attribute("sla.samples", report.samples)
            return report

    def activity(self, start: datetime, end: datetime) -> Dict[str, List[ProposalActivityRow]]:
        """All detail listings for the window, computed on one snapshot."""
        proposals = self.load_proposals()
        return {
            "created": reporting.created_in_period(proposals, start, end),
            "adjustments": reporting.adjustments_in_period(proposals, start, end),
            "terms_signed": reporting.terms_signed_in_period(proposals, start, end),
            "other_review_entries": reporting.other_review_entries_in_period(proposals, start, end),
        }

    def for_period(self, period: ReportPeriod) -> Dict[str, object]:
        """Consolidated counts and SLA for a validated period."""
        proposals = self.load_proposals()
        logger.info(
            "Computing period report",
            extra={"start": period.start.isoformat(), "end": period.end.isoformat(), "proposals": len(proposals)}
        )
        return {
            "consolidated": reporting.consolidated_counts(proposals, period.start, period.end),
            "sla": reporting.column_sla(proposals, period.start, period.end, self.sla_targets),
        }
