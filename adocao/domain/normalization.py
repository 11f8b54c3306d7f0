# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Normalization of persisted proposal documents.

This module is the single ingestion boundary: it maps the legacy spellings
found in older records (Portuguese column and role names, ``action``/``tipo``
instead of ``type``, ``quando`` instead of ``at``, ``override_no_vistoria``
...) onto the canonical event union. Records that cannot be parsed are
dropped, never propagated.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from adocao.models.base import ensure_utc, generate_object_id, utc_now
from adocao.models.entities import AttachmentMeta, Proposal
from adocao.models.enums import AttachmentKind, Column, DecisionOutcome, EventType
from adocao.models.events import (
    BaseEvent, CreateEvent, DecisionEvent, MoveEvent, OverrideEvent,
    RequestAdjustmentsEvent
)
from .projection import fold

logger = logging.getLogger(__name__)

UNKNOWN_ACTOR = "unknown"
DEFAULT_OWNER_ROLE = "adopter_pf"
NOT_RECORDED_NOTE = "(not recorded)"
RESUBMIT_NOTE = "Adopter resubmission after adjustments"

LEGACY_COLUMNS = {
    "protocolo": Column.PROTOCOL,
    "analise_semad": Column.SEMAD_REVIEW,
    "analise_ecos": Column.ECOS_REVIEW,
    "ajustes": Column.ADJUSTMENTS,
    "decisao": Column.DECISION,
    "termo_assinado": Column.TERM_SIGNED,
    "indeferida": Column.REJECTED,
}

LEGACY_ROLES = {
    "adotante_pf": "adopter_pf",
    "adotante_pj": "adopter_pj",
    "gestor_semad": "semad_manager",
    "gestor_ecos": "ecos_manager",
    "gestor_governo": "government_manager",
    "administrador": "administrator",
    "sistema": "system",
}

LEGACY_EVENT_TYPES = {
    "override_no_vistoria": EventType.OVERRIDE,
    "resubmit_adjustments": EventType.MOVE,
}

LEGACY_ATTACHMENT_KINDS = {
    "carta_intencao": AttachmentKind.LETTER_OF_INTENT,
    "projeto_resumo": AttachmentKind.PROJECT_SUMMARY,
}

_APPROVED_WORDS = {"approved", "aprovado", "aprovada", "deferido", "deferida", "termo_assinado", "term_signed"}
_REJECTED_WORDS = {"rejected", "indeferido", "indeferida", "negado", "rejeitado", "rejeitada"}


def _first(raw: Dict[str, Any], *keys: str) -> Any:
    """First non-None value among several legacy spellings."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a datetime or ISO-8601 string; None when unparseable."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = _text(value)
    if text is None:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def normalize_column(value: Any, default: Optional[Column] = Column.PROTOCOL) -> Optional[Column]:
    """Canonical column for a raw value; unknown spellings fall back to ``default``."""
    if isinstance(value, Column):
        return value
    text = _text(value)
    if text is None:
        return default
    if text in LEGACY_COLUMNS:
        return LEGACY_COLUMNS[text]
    try:
        return Column(text)
    except ValueError:
        return default


def normalize_role(value: Any, default: str = UNKNOWN_ACTOR) -> str:
    text = _text(value)
    if text is None:
        return default
    return LEGACY_ROLES.get(text, text)


def _normalize_outcome(value: Any) -> Optional[DecisionOutcome]:
    text = _text(value)
    if text is None:
        return None
    text = text.lower()
    if text in _APPROVED_WORDS:
        return DecisionOutcome.APPROVED
    if text in _REJECTED_WORDS:
        return DecisionOutcome.REJECTED
    return None


def _normalize_type(raw: Dict[str, Any]) -> Optional[EventType]:
    text = _text(_first(raw, "type", "action", "tipo"))
    if text is None:
        return None
    if text in LEGACY_EVENT_TYPES:
        return LEGACY_EVENT_TYPES[text]
    try:
        return EventType(text)
    except ValueError:
        return None


def normalize_event(raw: Any, current_column: Optional[Column] = None) -> Optional[BaseEvent]:
    """
    Map one raw event record onto the canonical event union.

    Args:
        raw: Persisted event record (any legacy shape)
        current_column: Column in force before this event, used when a
            movement record omits its source column

    Returns:
        The canonical event, or None when the record must be dropped
    """
    if isinstance(raw, BaseEvent):
        return raw
    if not isinstance(raw, dict):
        return None

    raw_type = _text(_first(raw, "type", "action", "tipo"))
    event_type = _normalize_type(raw)
    at = parse_timestamp(_first(raw, "at", "quando", "timestamp", "created_at"))
    if event_type is None or at is None:
        logger.debug("Dropping event without usable type/timestamp", extra={"raw_event": raw})
        return None

    meta = raw.get("meta") if isinstance(raw.get("meta"), dict) else {}
    common = {
        "id": str(raw.get("id") or generate_object_id()),
        "at": at,
        "actor_role": normalize_role(_first(raw, "actor_role", "actor", "autor", "profile", "role")),
    }
    from_column = normalize_column(
        _first(raw, "from", "from_column", "from_col", "from_coluna", "fromColuna"), default=None
    )
    raw_to = _first(raw, "to", "to_column", "to_col", "to_coluna", "toColuna")
    to_column = normalize_column(raw_to, default=None)
    note = _text(_first(raw, "note", "motivo", "mensagem", "comment"))
    source_column = from_column or current_column or Column.PROTOCOL

    try:
        if event_type == EventType.CREATE:
            return CreateEvent(**common)

        if event_type == EventType.MOVE:
            if raw_type == "resubmit_adjustments":
                return MoveEvent(
                    **common,
                    from_column=from_column or Column.ADJUSTMENTS,
                    to_column=to_column or Column.PROTOCOL,
                    note=note or RESUBMIT_NOTE,
                )
            if _text(raw_to) is None:
                logger.debug("Dropping move event without target column", extra={"raw_event": raw})
                return None
            if to_column is None:
                to_column = Column.PROTOCOL
            return MoveEvent(**common, from_column=source_column, to_column=to_column, note=note)

        if event_type == EventType.REQUEST_ADJUSTMENTS:
            return RequestAdjustmentsEvent(
                **common,
                from_column=source_column,
                note=note or NOT_RECORDED_NOTE,
            )

        if event_type == EventType.OVERRIDE:
            gate_from = normalize_column(_first(raw, "gate_from") or meta.get("gate_from"), default=None)
            gate_to = normalize_column(_first(raw, "gate_to") or meta.get("gate_to"), default=None)
            gate_from = gate_from or source_column
            gate_to = gate_to or to_column or gate_from
            return OverrideEvent(
                **common,
                from_column=from_column or gate_from,
                to_column=to_column or gate_to,
                note=note or NOT_RECORDED_NOTE,
                gate_from=gate_from,
                gate_to=gate_to,
            )

        outcome = _normalize_outcome(_first(raw, "outcome", "decision", "decisao", "resultado", "result"))
        if outcome is None:
            logger.debug("Dropping decision event without outcome", extra={"raw_event": raw})
            return None
        decision_note = _text(_first(raw, "decision_note")) or note
        if outcome == DecisionOutcome.REJECTED and decision_note is None:
            decision_note = NOT_RECORDED_NOTE
        return DecisionEvent(**common, outcome=outcome, note=decision_note)

    except PydanticValidationError as e:
        logger.debug("Dropping malformed event", extra={"raw_event": raw, "error": str(e)})
        return None


def normalize_history(raw_events: Iterable[Any]) -> List[BaseEvent]:
    """
    Normalize and order a raw history.

    Records are ordered by timestamp (ties keep insertion order) before being
    mapped, so a movement without a source column inherits the column in
    force at that point.
    """
    timed: List[Tuple[datetime, Any]] = []
    for raw in raw_events or []:
        if isinstance(raw, BaseEvent):
            timed.append((raw.at, raw))
            continue
        if not isinstance(raw, dict):
            continue
        at = parse_timestamp(_first(raw, "at", "quando", "timestamp", "created_at"))
        if at is None:
            continue
        timed.append((at, raw))
    timed.sort(key=lambda item: item[0])

    events: List[BaseEvent] = []
    current: Optional[Column] = None
    for _, raw in timed:
        event = normalize_event(raw, current)
        if event is None:
            continue
        events.append(event)
        current = fold(events).column
    return events


def _normalize_attachments(raw_items: Any) -> List[AttachmentMeta]:
    attachments: List[AttachmentMeta] = []
    if not isinstance(raw_items, list):
        return attachments
    for item in raw_items:
        if isinstance(item, AttachmentMeta):
            attachments.append(item)
            continue
        if not isinstance(item, dict):
            continue
        kind = _text(_first(item, "kind", "tipo"))
        kind = LEGACY_ATTACHMENT_KINDS.get(kind, kind)
        try:
            attachments.append(AttachmentMeta(
                kind=kind,
                file_name=item.get("file_name"),
                file_size=int(item.get("file_size") or 0),
                mime_type=item.get("mime_type") or "application/octet-stream",
                last_modified=int(item.get("last_modified") or 0),
            ))
        except (PydanticValidationError, TypeError, ValueError):
            logger.debug("Dropping malformed attachment", extra={"raw_attachment": item})
    return attachments


@dataclass
class NormalizedProposal:
    """Result of normalizing one persisted proposal document."""
    proposal: Proposal
    backfilled_event: Optional[CreateEvent] = None


def normalize_proposal(raw: Dict[str, Any]) -> NormalizedProposal:
    """
    Build a canonical proposal from a persisted document.

    The column and closure marker are recomputed from the history. A
    proposal persisted without any usable event receives a synthetic
    ``create`` dated at its creation time and attributed to its owner.

    Raises:
        pydantic.ValidationError: when mandatory proposal fields are missing
    """
    history = normalize_history(_first(raw, "history", "historico") or [])
    owner_role = normalize_role(raw.get("owner_role"), default=DEFAULT_OWNER_ROLE)

    created_at = parse_timestamp(_first(raw, "created_at", "createdAt"))
    if created_at is None:
        created_at = history[0].at if history else utc_now()
    updated_at = parse_timestamp(_first(raw, "updated_at", "updatedAt")) or created_at

    backfilled = None
    if not history:
        backfilled = CreateEvent(at=created_at, actor_role=owner_role)
        history = [backfilled]

    projection = fold(history)
    stored_column = normalize_column(_first(raw, "column", "kanban_coluna", "kanbanColuna"), default=None)
    if stored_column is not None and stored_column != projection.column:
        logger.warning(
            "Stored column diverges from event log; using the log",
            extra={"proposal_id": raw.get("id"), "stored": stored_column.value, "folded": projection.column.value}
        )

    proposal = Proposal(
        id=str(raw.get("id") or raw.get("_id") or generate_object_id()),
        protocol_code=str(_first(raw, "protocol_code", "codigo_protocolo", "codigo") or "—"),
        area_id=str(raw.get("area_id") or ""),
        area_name=str(_first(raw, "area_name", "area_nome") or "—"),
        plan_description=str(_first(raw, "plan_description", "descricao_plano") or ""),
        column=projection.column,
        attachments=_normalize_attachments(_first(raw, "attachments", "documentos")),
        owner_role=owner_role,
        created_at=created_at,
        updated_at=max(updated_at, history[-1].at),
        history=history,
        closed_status=projection.closed_status,
        closed_at=projection.closed_at,
        schema_version=int(raw.get("schema_version") or 1),
    )
    return NormalizedProposal(proposal=proposal, backfilled_event=backfilled)


def normalize_proposals(raw_items: Iterable[Dict[str, Any]]) -> List[Proposal]:
    """Normalize many documents, skipping the ones that cannot be read."""
    proposals: List[Proposal] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        try:
            proposals.append(normalize_proposal(raw).proposal)
        except (PydanticValidationError, TypeError, ValueError) as e:
            logger.warning(
                "Skipping unreadable proposal document",
                extra={"proposal_id": raw.get("id"), "error": str(e)}
            )
    return proposals
