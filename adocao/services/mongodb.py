# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB service layer with connection pooling and the durable proposal store.
"""

import os
import logging
from typing import List, Dict, Optional, Any, Sequence
from pymongo import MongoClient, ASCENDING
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    DuplicateKeyError
)
from opentelemetry import trace

from adocao.domain.errors import ProposalNotFound

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

PROPOSALS_COLLECTION = "proposals"


class MongoDBService:
    """MongoDB connection holder with pooling and index management."""

    def __init__(self, connection_string: str = None, database_name: str = None):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/adocao_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'adocao_dev')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

        logger.info(f"MongoDB service initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    tz_aware=True,
                    retryWrites=True,
                    retryReads=True
                )
                # Test connection
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                raise

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            result = self.client.admin.command('ping')
            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'database': self.database_name
            }
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    # Index Management

    def create_indexes(self) -> None:
        """Create the indexes used by the workflow and reporting queries."""
        try:
            logger.info("Creating MongoDB indexes...")

            # Proposals: open-per-area check and period scans
            proposals = self.get_collection(PROPOSALS_COLLECTION)
            proposals.create_index([("area_id", ASCENDING), ("closed_status", ASCENDING)])
            proposals.create_index("protocol_code", unique=True)
            proposals.create_index("history.at")

            # Areas
            areas = self.get_collection("areas")
            areas.create_index("code")
            areas.create_index("status")

            # Inspections feeding the gate
            inspections = self.get_collection("inspections")
            inspections.create_index([("proposal_id", ASCENDING), ("status", ASCENDING)])

            # Audit logs
            audit_logs = self.get_collection("audit_logs")
            audit_logs.create_index([("entity_id", ASCENDING), ("timestamp", ASCENDING)])
            audit_logs.create_index("trace_id")

            logger.info("MongoDB indexes created successfully")

        except Exception as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise


def _from_mongo(document: Dict[str, Any]) -> Dict[str, Any]:
    """Expose ``_id`` as ``id``."""
    if "_id" in document:
        document["id"] = str(document.pop("_id"))
    return document


class MongoProposalStore:
    """Proposal store over one collection; each document carries its event list."""

    def __init__(self, mongo_service: MongoDBService, collection_name: str = PROPOSALS_COLLECTION):
        self.mongo_service = mongo_service
        self.collection_name = collection_name

    @property
    def collection(self) -> Collection:
        return self.mongo_service.get_collection(self.collection_name)

    def insert(self, document: Dict[str, Any]) -> str:
        with tracer.start_as_current_span("mongodb.insert") as span:
            to_store = dict(document)
            proposal_id = str(to_store.pop("id", None) or to_store.get("_id"))
            to_store["_id"] = proposal_id
            span.set_attribute("proposal.id", proposal_id)
            try:
                self.collection.insert_one(to_store)
                logger.info(f"Created proposal document {proposal_id}")
                return proposal_id
            except DuplicateKeyError as e:
                logger.error(f"Duplicate key error in {self.collection_name}: {e}")
                raise ValueError(f"Proposal {proposal_id} already exists")
            except Exception as e:
                span.record_exception(e)
                logger.error(f"Failed to create proposal document {proposal_id}: {e}")
                raise

    def append(self, proposal_id: str, events: Sequence[Dict[str, Any]], fields: Dict[str, Any]) -> None:
        with tracer.start_as_current_span("mongodb.append") as span:
            span.set_attributes({"proposal.id": proposal_id, "events.count": len(events)})
            update: Dict[str, Any] = {"$push": {"history": {"$each": list(events)}}}
            if fields:
                update["$set"] = dict(fields)
            try:
                result = self.collection.update_one({"_id": proposal_id}, update)
            except Exception as e:
                span.record_exception(e)
                logger.error(f"Failed to append events to proposal {proposal_id}: {e}")
                raise
            if result.matched_count == 0:
                raise ProposalNotFound(proposal_id)
            logger.debug(f"Appended {len(events)} event(s) to proposal {proposal_id}")

    def adopt_history(self, proposal_id: str, events: Sequence[Dict[str, Any]], fields: Dict[str, Any]) -> bool:
        """Set ``history`` on a document that has no array there yet."""
        with tracer.start_as_current_span("mongodb.adopt_history") as span:
            span.set_attributes({"proposal.id": proposal_id, "events.count": len(events)})
            query = {"_id": proposal_id, "history": {"$not": {"$type": "array"}}}
            update = {"$set": {**fields, "history": list(events)}}
            try:
                result = self.collection.update_one(query, update)
            except Exception as e:
                span.record_exception(e)
                logger.error(f"Failed to adopt legacy history of proposal {proposal_id}: {e}")
                raise
            return result.modified_count > 0

    def read(self, proposal_id: str) -> Optional[Dict[str, Any]]:
        try:
            document = self.collection.find_one({"_id": proposal_id})
        except Exception as e:
            logger.error(f"Failed to read proposal {proposal_id}: {e}")
            raise
        return _from_mongo(document) if document is not None else None

    def read_all(self) -> List[Dict[str, Any]]:
        try:
            return [_from_mongo(document) for document in self.collection.find({})]
        except Exception as e:
            logger.error(f"Failed to read proposals: {e}")
            raise

    def snapshot(self) -> List[Dict[str, Any]]:
        with tracer.start_as_current_span("mongodb.snapshot") as span:
            documents = self.read_all()
            span.set_attribute("proposals.count", len(documents))
            return documents

    def find_open_by_area(self, area_id: str) -> List[Dict[str, Any]]:
        try:
            cursor = self.collection.find({"area_id": area_id, "closed_status": None})
            return [_from_mongo(document) for document in cursor]
        except Exception as e:
            logger.error(f"Failed to find open proposals for area {area_id}: {e}")
            raise
