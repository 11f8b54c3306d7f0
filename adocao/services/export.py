# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
CSV rendering of reports.

Files use ``;`` as separator so spreadsheets configured for pt-BR open them
without an import wizard.
"""

import csv
import io
from datetime import timedelta
from typing import Iterable, List, Optional, Sequence

from adocao.models.responses import ConsolidatedReport, ProductivityReport, ProposalActivityRow, SlaReport

DELIMITER = ";"
EMPTY = "—"


def format_duration(value: Optional[timedelta]) -> str:
    """Compact duration: ``Nd Nh``, ``Nh Nm``, ``Nm`` or ``Ns``."""
    if value is None:
        return EMPTY
    seconds = max(0, int(value.total_seconds()))
    minutes, hours, days = seconds // 60, seconds // 3600, seconds // 86400
    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m"
    return f"{seconds}s"


def to_csv(headers: Sequence[str], rows: Iterable[Sequence[object]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=DELIMITER, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if value is None else value for value in row])
    return buffer.getvalue()


def consolidated_csv(report: ConsolidatedReport) -> str:
    data = report.model_dump()
    return to_csv(list(data.keys()), [list(data.values())])


def productivity_csv(report: ProductivityReport) -> str:
    rows: List[List[object]] = [[transition.key, transition.count] for transition in report.transitions]
    return to_csv(["transition", "count"], rows)


def sla_csv(report: SlaReport) -> str:
    rows = []
    for column, stats in report.by_column.items():
        rows.append([
            column.value,
            stats.count,
            stats.censored,
            format_duration(stats.p50),
            format_duration(stats.p80),
            format_duration(stats.p95),
            format_duration(stats.target),
            EMPTY if stats.violation_rate is None else f"{stats.violation_rate * 100:.1f}%",
        ])
    return to_csv(["column", "samples", "censored", "p50", "p80", "p95", "target", "violation_rate"], rows)


def activity_csv(rows: Iterable[ProposalActivityRow]) -> str:
    return to_csv(
        ["protocol_code", "area_id", "area_name", "column", "at", "actor_role", "note"],
        [
            [row.protocol_code, row.area_id, row.area_name, row.column.value,
             row.at.isoformat(), row.actor_role, row.note]
            for row in rows
        ]
    )
