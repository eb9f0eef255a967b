"""Actors recorded on appointment audit fields."""

from dataclasses import dataclass, field
from uuid import UUID

from app.schemas.appointments import ActorKind

TRUSTED_KINDS = frozenset({ActorKind.STAFF, ActorKind.MANAGER, ActorKind.ADMIN})


@dataclass(frozen=True)
class Actor:
    """
    Who is acting on an appointment.

    Stored on rows as ``<field>_kind`` plus ``<field>_id``. ``business_ids`` is
    the set of businesses the actor may operate on; it is empty for customers
    and the system actor.
    """

    kind: ActorKind
    id: UUID | None = None
    business_ids: frozenset[UUID] = field(default_factory=frozenset)

    @classmethod
    def system(cls) -> "Actor":
        """Actor used for automated transitions."""
        return cls(kind=ActorKind.SYSTEM)

    @classmethod
    def customer(cls, customer_id: UUID | None) -> "Actor":
        """Actor for a customer acting through the public surface."""
        return cls(kind=ActorKind.CUSTOMER, id=customer_id)

    @property
    def is_trusted(self) -> bool:
        """Staff, managers and admins act on behalf of the business."""
        return self.kind in TRUSTED_KINDS

    def can_access(self, business_id: UUID) -> bool:
        """Check whether the actor operates on the given business."""
        return self.is_trusted and business_id in self.business_ids

    def audit(self, prefix: str) -> dict:
        """Column values for an ``<prefix>_kind``/``<prefix>_id`` pair."""
        return {f"{prefix}_kind": self.kind.value, f"{prefix}_id": self.id}
