# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Persistence port for proposals and their event logs.

A store keeps one document per proposal with its ordered ``history``. Events
are only ever appended: there is no operation to edit or remove one. A
log found only under a legacy key is copied once under ``history``. The
derived fields (``column``, closure marker, ``updated_at``) are rewritten on
each append so list views do not need to replay logs.
"""

import copy
import logging
import threading
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence

from opentelemetry import trace

from adocao.domain.errors import ProposalNotFound
from adocao.domain.normalization import normalize_proposal
from adocao.models.entities import Proposal
from adocao.models.events import BaseEvent

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _plain(value: Any) -> Any:
    """Replace enum members by their values, recursively."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def event_to_document(event: BaseEvent) -> Dict[str, Any]:
    return _plain(event.model_dump())


def proposal_to_document(proposal: Proposal) -> Dict[str, Any]:
    return _plain(proposal.model_dump())


def proposal_state_fields(proposal: Proposal) -> Dict[str, Any]:
    """Derived and editable fields rewritten alongside an append."""
    return _plain({
        "column": proposal.column,
        "closed_status": proposal.closed_status,
        "closed_at": proposal.closed_at,
        "updated_at": proposal.updated_at,
        "plan_description": proposal.plan_description,
        "attachments": [item.model_dump() for item in proposal.attachments],
    })


class ProposalStore(Protocol):
    """Narrow persistence port used by the repository and reporting."""

    def insert(self, document: Dict[str, Any]) -> str:
        ...

    def append(self, proposal_id: str, events: Sequence[Dict[str, Any]], fields: Dict[str, Any]) -> None:
        ...

    def adopt_history(self, proposal_id: str, events: Sequence[Dict[str, Any]], fields: Dict[str, Any]) -> bool:
        ...

    def read(self, proposal_id: str) -> Optional[Dict[str, Any]]:
        ...

    def read_all(self) -> List[Dict[str, Any]]:
        ...

    def snapshot(self) -> List[Dict[str, Any]]:
        ...

    def find_open_by_area(self, area_id: str) -> List[Dict[str, Any]]:
        ...


class InMemoryProposalStore:
    """Dictionary-backed store; every read returns deep copies."""

    def __init__(self, documents: Sequence[Dict[str, Any]] = ()):
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.RLock()
        for document in documents:
            self.insert(document)

    def insert(self, document: Dict[str, Any]) -> str:
        proposal_id = str(document.get("id") or document.get("_id"))
        with self._lock:
            if proposal_id in self._documents:
                raise ValueError(f"Proposal {proposal_id} already exists")
            stored = copy.deepcopy(document)
            stored["id"] = proposal_id
            self._documents[proposal_id] = stored
        logger.debug(f"Inserted proposal {proposal_id}")
        return proposal_id

    def append(self, proposal_id: str, events: Sequence[Dict[str, Any]], fields: Dict[str, Any]) -> None:
        with self._lock:
            document = self._documents.get(proposal_id)
            if document is None:
                raise ProposalNotFound(proposal_id)
            history = document.get("history")
            if not isinstance(history, list):
                history = []
                document["history"] = history
            history.extend(copy.deepcopy(list(events)))
            document.update(copy.deepcopy(fields))
        logger.debug(f"Appended {len(events)} event(s) to proposal {proposal_id}")

    def adopt_history(self, proposal_id: str, events: Sequence[Dict[str, Any]], fields: Dict[str, Any]) -> bool:
        """Store ``events`` as the canonical ``history``; only when none exists yet."""
        with self._lock:
            document = self._documents.get(proposal_id)
            if document is None:
                raise ProposalNotFound(proposal_id)
            if isinstance(document.get("history"), list):
                return False
            document["history"] = copy.deepcopy(list(events))
            document.update(copy.deepcopy(fields))
        return True

    def read(self, proposal_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            document = self._documents.get(proposal_id)
            return copy.deepcopy(document) if document is not None else None

    def read_all(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(document) for document in self._documents.values()]

    def snapshot(self) -> List[Dict[str, Any]]:
        return self.read_all()

    def find_open_by_area(self, area_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                copy.deepcopy(document) for document in self._documents.values()
                if str(document.get("area_id")) == area_id and document.get("closed_status") is None
            ]


class ProposalRepository:
    """
    Canonical proposals on top of a store.

    Every read goes through normalization, so callers always see a proposal
    whose column and closure are the fold of its log. A stored proposal
    without any usable event receives its synthetic ``create`` on the first
    read and the event is persisted. A log found only under a legacy key
    (``historico``) is written once under ``history`` before anything is
    appended to it.
    """

    def __init__(self, store: ProposalStore):
        self.store = store

    def get(self, proposal_id: str) -> Proposal:
        with tracer.start_as_current_span("repository.get") as span:
            span.set_attribute("proposal.id", proposal_id)
            document = self.store.read(proposal_id)
            if document is None:
                raise ProposalNotFound(proposal_id)
            normalized = normalize_proposal(document)
            proposal = normalized.proposal
            if normalized.backfilled_event is None and not isinstance(document.get("history"), list):
                # Log kept under a legacy key; appends only ever target ``history``.
                adopted = self.store.adopt_history(
                    proposal.id,
                    [event_to_document(event) for event in proposal.history],
                    proposal_state_fields(proposal)
                )
                if adopted:
                    span.set_attribute("proposal.history_adopted", True)
                    logger.info(
                        "Moved legacy history under the canonical key",
                        extra={"proposal_id": proposal.id, "events": len(proposal.history)}
                    )
            elif normalized.backfilled_event is not None:
                self.store.append(
                    proposal.id,
                    [event_to_document(normalized.backfilled_event)],
                    proposal_state_fields(proposal)
                )
                span.set_attribute("proposal.backfilled", True)
                logger.info(
                    "Backfilled create event for proposal without history",
                    extra={"proposal_id": proposal.id, "owner_role": proposal.owner_role}
                )
            return proposal

    def add(self, proposal: Proposal) -> None:
        with tracer.start_as_current_span("repository.add") as span:
            span.set_attribute("proposal.id", proposal.id)
            self.store.insert(proposal_to_document(proposal))

    def append(self, proposal: Proposal, events: Sequence[BaseEvent]) -> None:
        """Persist ``events`` (already part of ``proposal.history``) and the derived fields."""
        with tracer.start_as_current_span("repository.append") as span:
            span.set_attributes({"proposal.id": proposal.id, "events.count": len(events)})
            self.store.append(
                proposal.id,
                [event_to_document(event) for event in events],
                proposal_state_fields(proposal)
            )

    def open_proposals_for_area(self, area_id: str) -> List[Proposal]:
        """Non-closed proposals referencing ``area_id``, judged from their logs."""
        proposals = []
        for document in self.store.find_open_by_area(area_id):
            proposal = normalize_proposal(document).proposal
            if not proposal.is_closed():
                proposals.append(proposal)
        return proposals

    def snapshot(self) -> List[Dict[str, Any]]:
        return self.store.snapshot()
