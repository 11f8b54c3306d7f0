# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Protocol code sequence.

Codes have the form ``PREFIX-YYYY-NNNN``; the counter restarts every year
and is shared by every kind of request protocoled by the municipality.
"""

import logging
import threading
from datetime import datetime
from typing import Dict, Protocol

from pymongo import ReturnDocument

from .mongodb import MongoDBService

logger = logging.getLogger(__name__)

DEFAULT_PROTOCOL_PREFIX = "BETIM"


def format_protocol_code(prefix: str, year: int, sequence: int) -> str:
    return f"{prefix}-{year}-{sequence:04d}"


class ProtocolSequence(Protocol):
    def next_code(self, at: datetime) -> str:
        ...


class InMemoryProtocolSequence:
    """Annual counters kept in process memory."""

    def __init__(self, prefix: str = DEFAULT_PROTOCOL_PREFIX):
        self.prefix = prefix
        self._counters: Dict[int, int] = {}
        self._lock = threading.Lock()

    def next_code(self, at: datetime) -> str:
        with self._lock:
            sequence = self._counters.get(at.year, 0) + 1
            self._counters[at.year] = sequence
        return format_protocol_code(self.prefix, at.year, sequence)


class MongoProtocolSequence:
    """Annual counters in the ``counters`` collection, incremented atomically."""

    def __init__(self, mongo_service: MongoDBService, prefix: str = DEFAULT_PROTOCOL_PREFIX,
                 collection_name: str = "counters"):
        self.mongo_service = mongo_service
        self.prefix = prefix
        self.collection_name = collection_name

    def next_code(self, at: datetime) -> str:
        counter_id = f"protocol_seq_{at.year}"
        try:
            collection = self.mongo_service.get_collection(self.collection_name)
            document = collection.find_one_and_update(
                {"_id": counter_id},
                {"$inc": {"value": 1}},
                upsert=True,
                return_document=ReturnDocument.AFTER
            )
        except Exception as e:
            logger.error(f"Failed to increment protocol counter {counter_id}: {e}")
            raise
        return format_protocol_code(self.prefix, at.year, int(document["value"]))
