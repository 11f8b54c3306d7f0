# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Inspection gate adapter.

A proposal satisfies the gate when at least one of its inspections reached
``report_issued``.
"""

import logging
import threading
from typing import Dict, List, Protocol

from opentelemetry import trace

from adocao.models.entities import Inspection
from adocao.models.enums import InspectionStatus
from .mongodb import MongoDBService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

LEGACY_INSPECTION_STATUSES = {
    "agendada": InspectionStatus.SCHEDULED,
    "realizada": InspectionStatus.PERFORMED,
    "laudo_emitido": InspectionStatus.REPORT_ISSUED,
    "cancelada": InspectionStatus.CANCELLED,
}


class InspectionGate(Protocol):
    """Answers whether the prerequisite artifact exists for a proposal."""

    def has_required_artifact(self, proposal_id: str) -> bool:
        ...


class InMemoryInspectionGate:
    """Inspections recorded in process memory."""

    def __init__(self):
        self._by_proposal: Dict[str, Dict[str, Inspection]] = {}
        self._lock = threading.Lock()

    def record(self, inspection: Inspection) -> None:
        with self._lock:
            self._by_proposal.setdefault(inspection.proposal_id, {})[inspection.id] = inspection

    def inspections_for(self, proposal_id: str) -> List[Inspection]:
        with self._lock:
            return list(self._by_proposal.get(proposal_id, {}).values())

    def has_required_artifact(self, proposal_id: str) -> bool:
        return any(
            inspection.status == InspectionStatus.REPORT_ISSUED
            for inspection in self.inspections_for(proposal_id)
        )


class MongoInspectionGate:
    """Gate over the ``inspections`` collection."""

    def __init__(self, mongo_service: MongoDBService, collection_name: str = "inspections"):
        self.mongo_service = mongo_service
        self.collection_name = collection_name

    def has_required_artifact(self, proposal_id: str) -> bool:
        with tracer.start_as_current_span("inspections.has_required_artifact") as span:
            span.set_attribute("proposal.id", proposal_id)
            collection = self.mongo_service.get_collection(self.collection_name)
            issued = [InspectionStatus.REPORT_ISSUED.value] + [
                legacy for legacy, status in LEGACY_INSPECTION_STATUSES.items()
                if status == InspectionStatus.REPORT_ISSUED
            ]
            count = collection.count_documents(
                {"proposal_id": proposal_id, "status": {"$in": issued}},
                limit=1
            )
            span.set_attribute("inspections.report_issued", count > 0)
            logger.debug(f"Inspection gate for proposal {proposal_id}: {count > 0}")
            return count > 0
