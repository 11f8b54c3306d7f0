# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Transition policy and gate override contracts.

The engine never decides on its own who may move a proposal where: it asks a
``TransitionPolicy``. ``RoleTransitionPolicy`` is the table used by the kanban
of the municipal departments and is the default wiring.
"""

from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Protocol, Set, Tuple

from adocao.models.enums import ActorRole, Column

Transition = Tuple[Column, Column]

DEFAULT_GATED_TRANSITIONS: FrozenSet[Transition] = frozenset({
    (Column.SEMAD_REVIEW, Column.ECOS_REVIEW),
})


class TransitionPolicy(Protocol):
    """Collaborator answering which columns an actor may move a proposal to."""

    def allowed_targets(self, actor_role: str, from_column: Column) -> Set[Column]:
        ...


_ADMIN = ActorRole.ADMINISTRATOR.value
_SEMAD = ActorRole.SEMAD_MANAGER.value
_ECOS = ActorRole.ECOS_MANAGER.value
_GOVERNMENT = ActorRole.GOVERNMENT_MANAGER.value

DEFAULT_RULES: Dict[Column, Dict[Column, FrozenSet[str]]] = {
    Column.PROTOCOL: {
        Column.SEMAD_REVIEW: frozenset({_ADMIN, _SEMAD}),
        Column.ADJUSTMENTS: frozenset({_ADMIN, _SEMAD}),
    },
    Column.SEMAD_REVIEW: {
        Column.ECOS_REVIEW: frozenset({_ADMIN, _SEMAD}),
        Column.ADJUSTMENTS: frozenset({_ADMIN, _SEMAD}),
        Column.REJECTED: frozenset({_ADMIN, _SEMAD}),
    },
    Column.ECOS_REVIEW: {
        Column.DECISION: frozenset({_ADMIN, _ECOS}),
        Column.ADJUSTMENTS: frozenset({_ADMIN, _ECOS}),
        Column.REJECTED: frozenset({_ADMIN, _ECOS}),
    },
    Column.ADJUSTMENTS: {
        Column.SEMAD_REVIEW: frozenset({_ADMIN, _SEMAD, _ECOS}),
        Column.ECOS_REVIEW: frozenset({_ADMIN, _ECOS}),
    },
    Column.DECISION: {
        Column.TERM_SIGNED: frozenset({_ADMIN, _GOVERNMENT}),
        Column.ADJUSTMENTS: frozenset({_ADMIN, _GOVERNMENT}),
        Column.REJECTED: frozenset({_ADMIN, _GOVERNMENT}),
    },
}


class RoleTransitionPolicy:
    """Table-driven policy: ``from_column -> to_column -> roles``."""

    def __init__(self, rules: Optional[Mapping[Column, Mapping[Column, Iterable[str]]]] = None):
        source = DEFAULT_RULES if rules is None else rules
        self.rules: Dict[Column, Dict[Column, FrozenSet[str]]] = {
            from_column: {to_column: frozenset(roles) for to_column, roles in targets.items()}
            for from_column, targets in source.items()
        }

    def allowed_targets(self, actor_role: str, from_column: Column) -> Set[Column]:
        targets = self.rules.get(from_column, {})
        return {to_column for to_column, roles in targets.items() if actor_role in roles}


@dataclass(frozen=True)
class OverrideContext:
    """Description of a blocked gated transition, handed to the override decider."""
    proposal_id: str
    protocol_code: str
    actor_role: str
    from_column: Column
    to_column: Column

    @property
    def gate(self) -> Transition:
        return (self.from_column, self.to_column)

    @property
    def prompt(self) -> str:
        return (
            f"No issued inspection report found for {self.protocol_code}. "
            f"Move {self.from_column.value} -> {self.to_column.value} anyway?"
        )


@dataclass(frozen=True)
class OverrideDecision:
    """Answer of the override decider."""
    approved: bool
    note: Optional[str] = None

    @property
    def justification(self) -> Optional[str]:
        """Stripped note when approved with a non-empty one, otherwise None."""
        if not self.approved or self.note is None:
            return None
        return self.note.strip() or None


OverrideDecider = Callable[[OverrideContext], OverrideDecision]
