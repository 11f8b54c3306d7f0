# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Adote uma Área - workflow core entry point

Wires the workflow engine and the reporting service to the backends selected
by configuration: in-memory for embedding and tests, MongoDB and Redis for
shared deployments.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from adocao.config import Settings
from adocao.domain.policy import OverrideDecider, RoleTransitionPolicy, TransitionPolicy
from adocao.domain.workflow import Clock, WorkflowEngine
from adocao.models.base import utc_now
from adocao.observability.config import setup_observability
from adocao.services.adapters import AdapterCaller
from adocao.services.areas import AreaRegistry, InMemoryAreaRegistry, MongoAreaRegistry
from adocao.services.audit import AuditService
from adocao.services.event_store import InMemoryProposalStore, ProposalRepository, ProposalStore
from adocao.services.inspections import InMemoryInspectionGate, InspectionGate, MongoInspectionGate
from adocao.services.locks import create_lock_manager
from adocao.services.mongodb import MongoDBService, MongoProposalStore
from adocao.services.protocol import InMemoryProtocolSequence, MongoProtocolSequence
from adocao.services.reporting import ReportingService

logger = logging.getLogger(__name__)


@dataclass
class Application:
    """Services exposed to callers (CLI, UI backends, scripts)."""
    settings: Settings
    engine: WorkflowEngine
    reporting: ReportingService
    store: ProposalStore
    areas: AreaRegistry
    gate: InspectionGate
    audit: AuditService
    mongodb_service: Optional[MongoDBService] = None

    def close(self) -> None:
        self.engine.adapters.shutdown()
        if self.mongodb_service is not None:
            self.mongodb_service.close_connection()


def create_engine(
    settings: Optional[Settings] = None,
    areas: Optional[AreaRegistry] = None,
    gate: Optional[InspectionGate] = None,
    policy: Optional[TransitionPolicy] = None,
    override_decider: Optional[OverrideDecider] = None,
    clock: Clock = utc_now,
    init_observability: bool = False
) -> Application:
    """
    Build the application from settings.

    Explicit ``areas``/``gate`` collaborators take precedence over the ones
    implied by ``STORE_BACKEND``.
    """
    settings = settings or Settings.from_env()
    if init_observability:
        setup_observability(settings.environment, settings.otel_enabled)

    mongodb_service = None
    if settings.store_backend == "mongodb":
        mongodb_service = MongoDBService(settings.mongodb_uri, settings.mongodb_database)
        mongodb_service.create_indexes()
        store: ProposalStore = MongoProposalStore(mongodb_service)
        protocol = MongoProtocolSequence(mongodb_service, prefix=settings.protocol_prefix)
        areas = areas or MongoAreaRegistry(mongodb_service)
        gate = gate or MongoInspectionGate(mongodb_service)
    else:
        store = InMemoryProposalStore()
        protocol = InMemoryProtocolSequence(prefix=settings.protocol_prefix)
        areas = areas or InMemoryAreaRegistry()
        gate = gate or InMemoryInspectionGate()

    locks = create_lock_manager(
        settings.lock_backend,
        redis_url=settings.redis_url,
        default_timeout=settings.lock_timeout_seconds
    )
    audit = AuditService(mongodb_service)

    engine = WorkflowEngine(
        repository=ProposalRepository(store),
        areas=areas,
        gate=gate,
        policy=policy or RoleTransitionPolicy(),
        locks=locks,
        protocol=protocol,
        clock=clock,
        override_decider=override_decider,
        audit=audit,
        adapters=AdapterCaller(settings.adapter_timeout_seconds),
        gated_transitions=settings.gated_transitions,
        lock_timeout=settings.lock_timeout_seconds
    )
    reporting = ReportingService(store, settings.sla_targets)

    logger.info(
        "Workflow engine created",
        extra={
            "environment": settings.environment,
            "store_backend": settings.store_backend,
            "lock_backend": settings.lock_backend
        }
    )
    return Application(
        settings=settings,
        engine=engine,
        reporting=reporting,
        store=store,
        areas=areas,
        gate=gate,
        audit=audit,
        mongodb_service=mongodb_service
    )
