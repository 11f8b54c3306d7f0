# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import os
import pytest
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from adocao.domain.workflow import WorkflowEngine
from adocao.models.entities import Area, AttachmentMeta
from adocao.models.enums import AreaStatus, AttachmentKind, Column
from adocao.services.adapters import AdapterCaller
from adocao.services.areas import InMemoryAreaRegistry
from adocao.services.audit import AuditService
from adocao.services.event_store import InMemoryProposalStore, ProposalRepository
from adocao.services.inspections import InMemoryInspectionGate
from adocao.services.locks import InMemoryLockManager
from adocao.services.protocol import InMemoryProtocolSequence

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['OTEL_ENABLED'] = 'false'

T0 = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """Manual clock starting at 2025-03-03 09:00 UTC."""
    return ManualClock()


@pytest.fixture
def areas():
    """Registry with two available areas and one already adopted."""
    return InMemoryAreaRegistry([
        Area(id="area-1", code="A-001", name="Praça Central", status=AreaStatus.AVAILABLE),
        Area(id="area-2", code="A-002", name="Canteiro Av. Amazonas", status=AreaStatus.AVAILABLE),
        Area(id="area-3", code="A-003", name="Rotatória Norte", status=AreaStatus.ADOPTED),
    ])


@pytest.fixture
def gate():
    """Inspection gate without any inspection."""
    return InMemoryInspectionGate()


@pytest.fixture
def store():
    """Empty in-memory proposal store."""
    return InMemoryProposalStore()


@pytest.fixture
def audit_service():
    """Audit service kept in memory."""
    return AuditService()


@pytest.fixture
def engine(store, areas, gate, clock, audit_service):
    """Workflow engine over in-memory collaborators."""
    engine = WorkflowEngine(
        repository=ProposalRepository(store),
        areas=areas,
        gate=gate,
        locks=InMemoryLockManager(default_timeout=2.0),
        protocol=InMemoryProtocolSequence(prefix="BETIM"),
        clock=clock,
        audit=audit_service,
        adapters=AdapterCaller(timeout_seconds=2.0)
    )
    yield engine
    engine.adapters.shutdown()


@pytest.fixture
def sample_attachments() -> List[AttachmentMeta]:
    """Both mandatory documents."""
    return [
        AttachmentMeta(
            kind=AttachmentKind.LETTER_OF_INTENT,
            file_name="carta.pdf",
            file_size=1024,
            mime_type="application/pdf",
            last_modified=1700000000000
        ),
        AttachmentMeta(
            kind=AttachmentKind.PROJECT_SUMMARY,
            file_name="projeto.pdf",
            file_size=2048,
            mime_type="application/pdf",
            last_modified=1700000000000
        ),
    ]


@pytest.fixture
def created_proposal(engine, clock, sample_attachments):
    """Proposal protocoled for area-1 by an individual adopter."""
    result = engine.create_proposal(
        area_id="area-1",
        plan_description="Jardinagem e manutenção semanal",
        attachments=sample_attachments,
        owner_role="adopter_pf"
    )
    clock.advance(hours=1)
    return result.proposal


@pytest.fixture
def proposal_in_semad_review(engine, clock, created_proposal):
    """Proposal accepted by SEMAD for review."""
    result = engine.move(created_proposal.id, Column.SEMAD_REVIEW, "semad_manager")
    clock.advance(days=1)
    return result.proposal


@pytest.fixture
def legacy_proposal_document() -> Dict[str, Any]:
    """Proposal persisted by the first version of the kanban."""
    return {
        "id": "legacy-1",
        "codigo_protocolo": "BETIM-2024-0007",
        "area_id": "area-9",
        "area_nome": "Praça da Estação",
        "descricao_plano": "Plantio de mudas",
        "kanban_coluna": "analise_ecos",
        "owner_role": "adotante_pj",
        "created_at": "2024-05-01T10:00:00Z",
        "updated_at": "2024-05-10T10:00:00Z",
        "documentos": [
            {"tipo": "carta_intencao", "file_name": "carta.pdf", "file_size": 10, "mime_type": "application/pdf"}
        ],
        "history": [
            {"action": "create", "quando": "2024-05-01T10:00:00Z", "autor": "adotante_pj"},
            {"type": "move", "at": "2024-05-02T10:00:00Z", "actor_role": "gestor_semad",
             "from": "protocolo", "to": "analise_semad"},
            {"type": "override_no_vistoria", "at": "2024-05-05T09:59:59Z", "actor_role": "gestor_semad",
             "motivo": "Vistoria agendada", "meta": {"gate_from": "analise_semad", "gate_to": "analise_ecos"}},
            {"type": "move", "timestamp": "2024-05-05T10:00:00Z", "profile": "gestor_semad",
             "to_coluna": "analise_ecos"},
            {"type": "move", "actor_role": "gestor_ecos", "to": "decisao"},
            {"type": "teleport", "at": "2024-05-06T10:00:00Z", "actor_role": "gestor_ecos"},
        ],
    }
