# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - External integrations and side effects.
"""

from .mongodb import MongoDBService, MongoProposalStore
from .event_store import InMemoryProposalStore, ProposalRepository, ProposalStore
from .areas import AreaRegistry, InMemoryAreaRegistry, MongoAreaRegistry
from .inspections import InspectionGate, InMemoryInspectionGate, MongoInspectionGate
from .locks import InMemoryLockManager, RedisLockManager, create_lock_manager
from .adapters import AdapterCaller
from .protocol import InMemoryProtocolSequence, MongoProtocolSequence

__all__ = [
    "MongoDBService",
    "MongoProposalStore",
    "InMemoryProposalStore",
    "ProposalRepository",
    "ProposalStore",
    "AreaRegistry",
    "InMemoryAreaRegistry",
    "MongoAreaRegistry",
    "InspectionGate",
    "InMemoryInspectionGate",
    "MongoInspectionGate",
    "InMemoryLockManager",
    "RedisLockManager",
    "create_lock_manager",
    "AdapterCaller",
    "InMemoryProtocolSequence",
    "MongoProtocolSequence"
]
