# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Runtime configuration read from environment variables.
"""

import os
from datetime import timedelta
from typing import Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from adocao.domain.policy import DEFAULT_GATED_TRANSITIONS
from adocao.domain.reporting import DEFAULT_SLA_TARGET_DAYS
from adocao.models.enums import Column


def _parse_gated_transitions(raw: str) -> List[Tuple[Column, Column]]:
    """``"semad_review>ecos_review,decision>term_signed"`` -> column pairs."""
    pairs = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        from_column, _, to_column = item.partition(">")
        pairs.append((Column(from_column.strip()), Column(to_column.strip())))
    return pairs


class Settings(BaseModel):
    """Application settings."""

    environment: str = Field(default="development")
    store_backend: str = Field(default="memory", description="memory or mongodb")
    mongodb_uri: str = Field(default="mongodb://localhost:27017/adocao_dev")
    mongodb_database: str = Field(default="adocao_dev")
    lock_backend: str = Field(default="memory", description="memory or redis")
    redis_url: str = Field(default="redis://localhost:6379")
    lock_timeout_seconds: float = Field(default=10.0, gt=0)
    adapter_timeout_seconds: float = Field(default=5.0, gt=0)
    protocol_prefix: str = Field(default="BETIM", min_length=1)
    otel_enabled: bool = Field(default=True)
    sla_target_days: Dict[Column, float] = Field(
        default_factory=lambda: {column: float(days) for column, days in DEFAULT_SLA_TARGET_DAYS.items()}
    )
    gated_transitions: List[Tuple[Column, Column]] = Field(
        default_factory=lambda: sorted(DEFAULT_GATED_TRANSITIONS)
    )

    @field_validator('store_backend')
    @classmethod
    def validate_store_backend(cls, v):
        if v not in ('memory', 'mongodb'):
            raise ValueError('STORE_BACKEND must be memory or mongodb')
        return v

    @field_validator('lock_backend')
    @classmethod
    def validate_lock_backend(cls, v):
        if v not in ('memory', 'redis'):
            raise ValueError('LOCK_BACKEND must be memory or redis')
        return v

    @property
    def sla_targets(self) -> Dict[Column, timedelta]:
        return {column: timedelta(days=days) for column, days in self.sla_target_days.items()}

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ``os.environ`` (or the given mapping)."""
        env = os.environ if environ is None else environ
        data = {}
        for field_name in ("environment", "store_backend", "mongodb_uri", "mongodb_database",
                           "lock_backend", "redis_url", "lock_timeout_seconds",
                           "adapter_timeout_seconds", "protocol_prefix"):
            value = env.get(field_name.upper())
            if value is not None and value != "":
                data[field_name] = value

        if env.get("OTEL_ENABLED"):
            data["otel_enabled"] = env["OTEL_ENABLED"].lower() == "true"

        targets = {column: float(days) for column, days in DEFAULT_SLA_TARGET_DAYS.items()}
        for column in Column:
            value = env.get(f"SLA_TARGET_DAYS_{column.value.upper()}")
            if value:
                targets[column] = float(value)
        data["sla_target_days"] = targets

        if env.get("GATED_TRANSITIONS") is not None:
            data["gated_transitions"] = _parse_gated_transitions(env["GATED_TRANSITIONS"])

        return cls(**data)
