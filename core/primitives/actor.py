"""
Tradeflow Actor Primitive — Who Performed an Action
====================================================
Engine: Core Primitives

The Actor Primitive captures WHO performed an operation. Identity is
established upstream (login, API gateway); the core only records it on
documents and stock movements.

Actor types:
    HUMAN   — A real user (sales admin, warehouse staff, finance)
    SYSTEM  — Automated action (scheduled overdue sweep, import job)

RULES (NON-NEGOTIABLE):
- Every state-changing operation MUST identify its actor
- Human actors MUST include a user_id
- System actors MUST include a component name
- No role checks here: authorization happens before the core is called

This file contains NO persistence logic.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


# ══════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════

class ActorType(Enum):
    """The type of entity that performed an action."""
    HUMAN = "Human"
    SYSTEM = "System"


# ══════════════════════════════════════════════════════════════
# ACTOR DEFINITION
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Actor:
    """
    Identifies who performed an action.

    Fields:
        actor_type:     HUMAN | SYSTEM
        actor_id:       User or component identifier (stored on rows)
        display_name:   Human-readable name for audit display
        role:           Optional role label supplied by the caller
    """
    actor_type: ActorType
    actor_id: str
    display_name: str
    role: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.actor_type, ActorType):
            raise ValueError("actor_type must be ActorType enum.")
        if not self.actor_id or not isinstance(self.actor_id, str):
            raise ValueError("actor_id must be a non-empty string.")
        if not self.display_name or not isinstance(self.display_name, str):
            raise ValueError("display_name must be a non-empty string.")

    @property
    def is_human(self) -> bool:
        return self.actor_type == ActorType.HUMAN

    @property
    def is_system(self) -> bool:
        return self.actor_type == ActorType.SYSTEM

    def to_dict(self) -> dict:
        return {
            "actor_type": self.actor_type.value,
            "actor_id": self.actor_id,
            "display_name": self.display_name,
            "role": self.role,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Actor:
        return cls(
            actor_type=ActorType(data["actor_type"]),
            actor_id=data["actor_id"],
            display_name=data["display_name"],
            role=data.get("role"),
        )

    @classmethod
    def human(
        cls,
        user_id: str,
        display_name: str,
        role: Optional[str] = None,
    ) -> Actor:
        """Factory for human actors."""
        return cls(
            actor_type=ActorType.HUMAN,
            actor_id=user_id,
            display_name=display_name,
            role=role,
        )

    @classmethod
    def system(cls, component: str) -> Actor:
        """Factory for system actors (scheduled jobs, imports)."""
        return cls(
            actor_type=ActorType.SYSTEM,
            actor_id=f"system:{component}",
            display_name=f"System ({component})",
        )
