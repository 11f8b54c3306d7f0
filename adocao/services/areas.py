# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Area registry adapter.

The workflow engine only reads an area's availability and asks the registry
to change it; it never edits areas directly.
"""

import logging
import threading
from typing import Any, Dict, Iterable, Optional, Protocol, Union

from opentelemetry import trace
from pydantic import ValidationError as PydanticValidationError

from adocao.models.entities import Area
from adocao.models.enums import AreaStatus
from .mongodb import MongoDBService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

LEGACY_AREA_STATUSES = {
    "disponivel": AreaStatus.AVAILABLE,
    "em_adocao": AreaStatus.IN_REVIEW,
    "adotada": AreaStatus.ADOPTED,
}


def normalize_area_status(value: Any) -> AreaStatus:
    """Canonical status; unknown values count as available."""
    if isinstance(value, AreaStatus):
        return value
    text = str(value or "").strip()
    if text in LEGACY_AREA_STATUSES:
        return LEGACY_AREA_STATUSES[text]
    try:
        return AreaStatus(text)
    except ValueError:
        return AreaStatus.AVAILABLE


def area_from_document(document: Dict[str, Any]) -> Area:
    """Build an ``Area`` from a stored document (legacy field names accepted)."""
    return Area(
        id=str(document.get("id") or document.get("_id")),
        code=str(document.get("code") or document.get("codigo") or ""),
        name=str(document.get("name") or document.get("nome") or ""),
        status=normalize_area_status(document.get("status")),
        active=bool(document.get("active", document.get("ativo", True))),
    )


class AreaRegistry(Protocol):
    """Availability lookup and update for areas."""

    def get_area(self, area_id: str) -> Optional[Area]:
        ...

    def set_area_status(self, area_id: str, status: AreaStatus) -> None:
        ...


class InMemoryAreaRegistry:
    """Thread-safe registry kept in process memory."""

    def __init__(self, areas: Iterable[Union[Area, Dict[str, Any]]] = ()):
        self._areas: Dict[str, Area] = {}
        self._lock = threading.Lock()
        for area in areas:
            self.add_area(area)

    def add_area(self, area: Union[Area, Dict[str, Any]]) -> Area:
        if not isinstance(area, Area):
            area = area_from_document(area)
        with self._lock:
            self._areas[area.id] = area.model_copy()
        return area

    def get_area(self, area_id: str) -> Optional[Area]:
        with self._lock:
            area = self._areas.get(area_id)
            return area.model_copy() if area is not None else None

    def set_area_status(self, area_id: str, status: AreaStatus) -> None:
        with self._lock:
            area = self._areas.get(area_id)
            if area is None:
                raise KeyError(f"Unknown area: {area_id}")
            area.status = status
        logger.info(f"Area {area_id} status set to {status.value}")


class MongoAreaRegistry:
    """Registry over the ``areas`` collection."""

    def __init__(self, mongo_service: MongoDBService, collection_name: str = "areas"):
        self.mongo_service = mongo_service
        self.collection_name = collection_name

    def get_area(self, area_id: str) -> Optional[Area]:
        with tracer.start_as_current_span("areas.get_area") as span:
            span.set_attribute("area.id", area_id)
            collection = self.mongo_service.get_collection(self.collection_name)
            document = collection.find_one({"_id": area_id})
            if document is None:
                span.set_attribute("area.found", False)
                return None
            try:
                return area_from_document(document)
            except PydanticValidationError as e:
                logger.error(f"Unreadable area document {area_id}: {e}")
                raise

    def set_area_status(self, area_id: str, status: AreaStatus) -> None:
        with tracer.start_as_current_span("areas.set_status") as span:
            span.set_attributes({"area.id": area_id, "area.status": status.value})
            collection = self.mongo_service.get_collection(self.collection_name)
            result = collection.update_one({"_id": area_id}, {"$set": {"status": status.value}})
            if result.matched_count == 0:
                raise KeyError(f"Unknown area: {area_id}")
            logger.info(f"Area {area_id} status set to {status.value}")
