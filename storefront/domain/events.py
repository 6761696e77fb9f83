"""Domain events for the storefront.

Domain events represent significant occurrences in the domain. The catalog
publishes its events after the change commits so dependent stores
(carts) can drop references to things that are no longer sellable.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar
from uuid import UUID, uuid4


@dataclass(frozen=True)
class DomainEvent(ABC):
    """Base class for domain events.

    Attributes:
        event_id: Unique identifier for this event instance.
        event_type: String identifier for the event type (set by subclass).
        occurred_at: Timestamp when the event occurred.
    """

    event_type: ClassVar[str]

    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for serialization.

        Returns:
            Dictionary representation of the event.
        """
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type,
            "occurred_at": self.occurred_at.isoformat(),
            "payload": self._payload(),
        }

    @abstractmethod
    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload data."""


# Async subscriber invoked with each published event
EventHandler = Callable[[DomainEvent], Awaitable[None]]


# ============================================================================
# Catalog Events
# ============================================================================


@dataclass(frozen=True)
class ProductRemoved(DomainEvent):
    """Event raised after a product deletion commits."""

    event_type: ClassVar[str] = "catalog.product_removed"

    product_id: str = ""

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {"product_id": self.product_id}


@dataclass(frozen=True)
class VariantRemoved(DomainEvent):
    """Event raised after a variant deletion commits."""

    event_type: ClassVar[str] = "catalog.variant_removed"

    product_id: str = ""
    variant_id: str = ""

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {"product_id": self.product_id, "variant_id": self.variant_id}


@dataclass(frozen=True)
class ProductVariantsIntroduced(DomainEvent):
    """Event raised when a product sold without variants gains its first ones."""

    event_type: ClassVar[str] = "catalog.variants_introduced"

    product_id: str = ""

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {"product_id": self.product_id}
