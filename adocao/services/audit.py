# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Audit service for workflow action logging with OpenTelemetry correlation.

The event log is the source of truth for reporting; the audit trail is the
operator-facing journal of who did what, correlated with traces.
"""

import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional
from opentelemetry import trace
from bson import ObjectId

from adocao.models.base import ensure_utc, utc_now
from .mongodb import MongoDBService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

AUDIT_ACTIONS = (
    "created",
    "status_changed",
    "adjustments_requested",
    "override",
    "resubmitted",
)


class AuditFilters:
    """Filters for audit trail queries."""

    def __init__(
        self,
        entity_id: Optional[str] = None,
        actor_role: Optional[str] = None,
        action: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ):
        self.entity_id = entity_id
        self.actor_role = actor_role
        self.action = action
        self.start_date = ensure_utc(start_date) if start_date else None
        self.end_date = ensure_utc(end_date) if end_date else None

    def to_mongo_query(self) -> Dict[str, Any]:
        """Convert filters to MongoDB query."""
        query: Dict[str, Any] = {}

        if self.entity_id:
            query["entity_id"] = self.entity_id

        if self.actor_role:
            query["actor_role"] = self.actor_role

        if self.action:
            query["action"] = self.action

        # Date range filter
        if self.start_date or self.end_date:
            date_filter = {}
            if self.start_date:
                date_filter["$gte"] = self.start_date
            if self.end_date:
                date_filter["$lte"] = self.end_date
            query["timestamp"] = date_filter

        return query

    def matches(self, entry: Dict[str, Any]) -> bool:
        if self.entity_id and entry.get("entity_id") != self.entity_id:
            return False
        if self.actor_role and entry.get("actor_role") != self.actor_role:
            return False
        if self.action and entry.get("action") != self.action:
            return False
        if self.start_date and entry["timestamp"] < self.start_date:
            return False
        if self.end_date and entry["timestamp"] > self.end_date:
            return False
        return True


class AuditService:
    """
    Audit trail persisted to the ``audit_logs`` collection.

    Without a MongoDB service the entries are kept in process memory, which
    is how the embedded and test wiring use it.
    """

    def __init__(self, mongo_service: Optional[MongoDBService] = None):
        """Initialize audit service with an optional MongoDB dependency."""
        self.mongo_service = mongo_service
        self.collection_name = "audit_logs"
        self._entries: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        logger.info("Audit service initialized")

    def log_action(
        self,
        actor_role: str,
        entity: str,
        entity_id: str,
        action: str,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        message: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Log an audit trail entry with trace correlation and structured logging.

        Args:
            actor_role: Role performing the action
            entity: Type of entity being acted upon ("proposal" or "area")
            entity_id: ID of the specific entity
            action: One of ``AUDIT_ACTIONS``
            from_status: Column or status before the action (optional)
            to_status: Column or status after the action (optional)
            message: Free-text note (optional)
            meta: Extra structured data (optional)

        Returns:
            str: ID of the created audit entry
        """
        with tracer.start_as_current_span("audit.log_action") as span:
            try:
                span_context = span.get_span_context()

                audit_entry = {
                    "_id": str(ObjectId()),
                    "timestamp": utc_now(),
                    "actor_role": actor_role,
                    "entity": entity,
                    "entity_id": entity_id,
                    "action": action,
                    "from_status": from_status,
                    "to_status": to_status,
                    "message": message,
                    "meta": meta or {},
                    "schema_version": 1
                }

                # Add trace correlation if available
                if span_context.is_valid:
                    audit_entry.update({
                        "trace_id": format(span_context.trace_id, "032x"),
                        "span_id": format(span_context.span_id, "016x")
                    })

                span.set_attributes({
                    "audit.entity": entity,
                    "audit.action": action,
                    "audit.actor_role": actor_role,
                    "audit.entity_id": entity_id
                })

                if self.mongo_service is not None:
                    self.mongo_service.get_collection(self.collection_name).insert_one(dict(audit_entry))
                else:
                    with self._lock:
                        self._entries.append(dict(audit_entry))

                logger.info(
                    "Audit trail entry created",
                    extra={
                        "audit_id": audit_entry["_id"],
                        "entity": entity,
                        "entity_id": entity_id,
                        "action": action,
                        "actor_role": actor_role,
                        "trace_id": audit_entry.get("trace_id"),
                        "audit_category": "workflow_action"
                    }
                )

                return audit_entry["_id"]

            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                logger.error(
                    "Failed to create audit trail entry",
                    extra={
                        "entity": entity,
                        "entity_id": entity_id,
                        "action": action,
                        "actor_role": actor_role,
                        "error": str(e)
                    },
                    exc_info=True
                )
                raise

    def query(self, filters: AuditFilters) -> List[Dict[str, Any]]:
        """Entries matching ``filters``, most recent first."""
        with tracer.start_as_current_span("audit.query") as span:
            if self.mongo_service is not None:
                collection = self.mongo_service.get_collection(self.collection_name)
                entries = list(collection.find(filters.to_mongo_query()).sort("timestamp", -1))
            else:
                with self._lock:
                    entries = [dict(entry) for entry in self._entries if filters.matches(entry)]
                entries.sort(key=lambda entry: entry["timestamp"], reverse=True)
            for entry in entries:
                entry["id"] = str(entry.pop("_id"))
            span.set_attribute("audit.results", len(entries))
            return entries
