# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Period reports computed from proposal event logs.

All functions here are pure: they take already-normalized proposals and a
closed window ``[start, end]`` and never touch the store. An inverted window
yields empty reports.
"""

import math
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, TypeVar

from adocao.models.base import ensure_utc
from adocao.models.entities import Proposal
from adocao.models.enums import Column, DecisionOutcome
from adocao.models.events import (
    BaseEvent, CreateEvent, DecisionEvent, MoveEvent, OverrideEvent, RequestAdjustmentsEvent
)
from adocao.models.responses import (
    ColumnSla, ConsolidatedReport, ProductivityReport, ProposalActivityRow, SlaReport, TransitionCount
)

T = TypeVar("T")

DEFAULT_SLA_TARGET_DAYS: Dict[Column, int] = {
    Column.PROTOCOL: 2,
    Column.SEMAD_REVIEW: 10,
    Column.ECOS_REVIEW: 10,
    Column.ADJUSTMENTS: 15,
    Column.DECISION: 7,
}

OTHER_REVIEW_COLUMNS = (Column.ECOS_REVIEW, Column.DECISION)


def default_sla_targets() -> Dict[Column, timedelta]:
    return {column: timedelta(days=days) for column, days in DEFAULT_SLA_TARGET_DAYS.items()}


def _window(start: datetime, end: datetime):
    start, end = ensure_utc(start), ensure_utc(end)
    return start, end, end >= start


def _in_period(event: BaseEvent, start: datetime, end: datetime) -> bool:
    return start <= event.at <= end


def _moves_into(event: BaseEvent, column: Column) -> bool:
    return isinstance(event, MoveEvent) and event.to_column == column


def _is_companion_request(history: Sequence[BaseEvent], index: int) -> bool:
    """Whether the move at ``index`` is followed by its own adjustments request."""
    return index + 1 < len(history) and isinstance(history[index + 1], RequestAdjustmentsEvent)


def _approved(event: BaseEvent) -> bool:
    if isinstance(event, DecisionEvent):
        return event.outcome == DecisionOutcome.APPROVED
    return _moves_into(event, Column.TERM_SIGNED)


def _rejected(event: BaseEvent) -> bool:
    if isinstance(event, DecisionEvent):
        return event.outcome == DecisionOutcome.REJECTED
    return _moves_into(event, Column.REJECTED)


def consolidated_counts(proposals: Iterable[Proposal], start: datetime, end: datetime) -> ConsolidatedReport:
    """
    Event counts for the window.

    A move into ``adjustments`` recorded without its companion
    ``request_adjustments`` (older records) counts as one request. Terms
    signed and rejections count proposals, not events.
    """
    start, end, valid = _window(start, end)
    report = ConsolidatedReport()
    if not valid:
        return report

    for proposal in proposals:
        approved = rejected = False
        for index, event in enumerate(proposal.history):
            if not _in_period(event, start, end):
                continue
            if isinstance(event, CreateEvent):
                report.protocols_created += 1
            elif isinstance(event, RequestAdjustmentsEvent):
                report.adjustments_requested += 1
            elif isinstance(event, MoveEvent):
                if event.to_column == Column.SEMAD_REVIEW:
                    report.entered_semad_review += 1
                elif event.to_column == Column.ECOS_REVIEW:
                    report.entered_ecos_review += 1
                elif event.to_column == Column.DECISION:
                    report.entered_decision += 1
                elif event.to_column == Column.ADJUSTMENTS and not _is_companion_request(proposal.history, index):
                    report.adjustments_requested += 1
            approved = approved or _approved(event)
            rejected = rejected or _rejected(event)
        report.terms_signed += int(approved)
        report.rejected += int(rejected)
    return report


def actor_productivity(proposals: Iterable[Proposal], actor_role: str,
                       start: datetime, end: datetime) -> ProductivityReport:
    """Moves, adjustments requests and overrides performed by one role in the window."""
    start, end, valid = _window(start, end)
    report = ProductivityReport(actor_role=actor_role)
    if not valid:
        return report

    touched: Set[str] = set()
    transitions: Counter = Counter()
    for proposal in proposals:
        for event in proposal.history:
            if event.actor_role != actor_role or not _in_period(event, start, end):
                continue
            if isinstance(event, MoveEvent):
                report.total_moves += 1
                transitions[f"{event.from_column.value}→{event.to_column.value}"] += 1
            elif isinstance(event, RequestAdjustmentsEvent):
                report.total_adjustments_requested += 1
            elif isinstance(event, OverrideEvent):
                report.total_overrides += 1
            else:
                continue
            touched.add(proposal.id)

    report.proposals_touched = len(touched)
    report.transitions = [
        TransitionCount(key=key, count=count)
        for key, count in sorted(transitions.items(), key=lambda item: (-item[1], item[0]))
    ]
    return report


def percentile(sorted_samples: Sequence[T], p: float) -> Optional[T]:
    """Nearest-rank value at ``floor(p * (n - 1))``, clamped to the sample range."""
    if not sorted_samples:
        return None
    n = len(sorted_samples)
    index = min(n - 1, max(0, math.floor(p * (n - 1))))
    return sorted_samples[index]


@dataclass(frozen=True)
class Segment:
    """Stay of a proposal in one column; ``end`` is None while still open."""
    column: Column
    start: datetime
    end: Optional[datetime] = None


def _creation_time(proposal: Proposal) -> datetime:
    for event in proposal.history:
        if isinstance(event, CreateEvent):
            return event.at
    return proposal.created_at


def column_segments(proposal: Proposal) -> List[Segment]:
    """Replay the moves of a proposal from its creation (in ``protocol``)."""
    segments: List[Segment] = []
    column = Column.PROTOCOL
    entered_at = _creation_time(proposal)
    for event in proposal.history:
        if not isinstance(event, MoveEvent):
            continue
        segments.append(Segment(column=column, start=entered_at, end=event.at))
        column = event.to_column
        entered_at = event.at
    segments.append(Segment(column=column, start=entered_at))
    return segments


def column_sla(proposals: Iterable[Proposal], start: datetime, end: datetime,
               targets: Optional[Mapping[Column, timedelta]] = None,
               columns: Optional[Sequence[Column]] = None) -> SlaReport:
    """
    Residency percentiles per column with right-censoring.

    Each segment contributes its overlap with the window. A segment that has
    not ended by ``end`` is cut at ``end`` and counted as censored.
    """
    targets = default_sla_targets() if targets is None else dict(targets)
    columns = list(columns) if columns is not None else list(targets.keys())
    start, end, valid = _window(start, end)
    if not valid:
        return SlaReport()

    samples: Dict[Column, List[timedelta]] = {column: [] for column in columns}
    censored: Counter = Counter()
    for proposal in proposals:
        for segment in column_segments(proposal):
            if segment.column not in samples:
                continue
            is_censored = segment.end is None or segment.end > end
            segment_end = end if is_censored else segment.end
            segment_start = max(segment.start, start)
            if segment_end <= segment_start:
                continue
            samples[segment.column].append(segment_end - segment_start)
            if is_censored:
                censored[segment.column] += 1

    report = SlaReport()
    for column in columns:
        values = sorted(samples[column])
        target = targets.get(column)
        violation_rate = None
        if target is not None and values:
            violation_rate = sum(1 for value in values if value > target) / len(values)
        report.by_column[column] = ColumnSla(
            column=column,
            count=len(values),
            censored=censored[column],
            p50=percentile(values, 0.5),
            p80=percentile(values, 0.8),
            p95=percentile(values, 0.95),
            target=target,
            violation_rate=violation_rate
        )
        report.samples += len(values)
    return report


# Detail listings

def _row(proposal: Proposal, event: BaseEvent) -> ProposalActivityRow:
    return ProposalActivityRow(
        proposal_id=proposal.id,
        protocol_code=proposal.protocol_code,
        area_id=proposal.area_id,
        area_name=proposal.area_name,
        column=proposal.column,
        at=event.at,
        actor_role=event.actor_role,
        note=getattr(event, "note", None),
        to_column=getattr(event, "to_column", None)
    )


def _listing(proposals: Iterable[Proposal], start: datetime, end: datetime,
             pick: Callable[[List[BaseEvent]], Optional[BaseEvent]], newest_first: bool) -> List[ProposalActivityRow]:
    start, end, valid = _window(start, end)
    if not valid:
        return []
    rows = []
    for proposal in proposals:
        in_period = [event for event in proposal.history if _in_period(event, start, end)]
        event = pick(in_period)
        if event is not None:
            rows.append(_row(proposal, event))
    rows.sort(key=lambda row: row.at, reverse=newest_first)
    return rows


def _first(events: List[BaseEvent], predicate: Callable[[BaseEvent], bool]) -> Optional[BaseEvent]:
    return next((event for event in events if predicate(event)), None)


def _last(events: List[BaseEvent], predicate: Callable[[BaseEvent], bool]) -> Optional[BaseEvent]:
    return next((event for event in reversed(events) if predicate(event)), None)


def created_in_period(proposals: Iterable[Proposal], start: datetime, end: datetime) -> List[ProposalActivityRow]:
    """Proposals protocoled in the window, oldest first."""
    return _listing(
        proposals, start, end,
        lambda events: _first(events, lambda e: isinstance(e, CreateEvent)),
        newest_first=False
    )


def adjustments_in_period(proposals: Iterable[Proposal], start: datetime, end: datetime) -> List[ProposalActivityRow]:
    """Latest adjustments request per proposal in the window, newest first."""
    def pick(events: List[BaseEvent]) -> Optional[BaseEvent]:
        return (_last(events, lambda e: isinstance(e, RequestAdjustmentsEvent))
                or _last(events, lambda e: _moves_into(e, Column.ADJUSTMENTS)))
    return _listing(proposals, start, end, pick, newest_first=True)


def terms_signed_in_period(proposals: Iterable[Proposal], start: datetime, end: datetime) -> List[ProposalActivityRow]:
    """Proposals approved in the window, newest first."""
    def pick(events: List[BaseEvent]) -> Optional[BaseEvent]:
        return (_last(events, lambda e: isinstance(e, DecisionEvent) and e.outcome == DecisionOutcome.APPROVED)
                or _last(events, lambda e: _moves_into(e, Column.TERM_SIGNED)))
    return _listing(proposals, start, end, pick, newest_first=True)


def other_review_entries_in_period(proposals: Iterable[Proposal], start: datetime,
                                   end: datetime) -> List[ProposalActivityRow]:
    """Latest entry into ECOS review or the government decision, newest first."""
    return _listing(
        proposals, start, end,
        lambda events: _last(
            events, lambda e: isinstance(e, MoveEvent) and e.to_column in OTHER_REVIEW_COLUMNS
        ),
        newest_first=True
    )
