"""Client model for tracking status subscribers."""

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, TYPE_CHECKING

from entitysync.models.entity import EntityState

if TYPE_CHECKING:
    from entitysync.core.connection import StatusConnection


@dataclass
class ClientState:
    """Represents a status client with its live connection and watched entity types."""

    client_id: str
    connection: Optional["StatusConnection"] = None
    close_handler: Optional[Callable[["StatusConnection"], None]] = None
    entity_states: Dict[str, EntityState] = field(default_factory=dict)

    @property
    def is_connected(self) -> bool:
        return self.connection is not None

    def entity_state(self, entity_type: str) -> EntityState:
        """Get the entity state for a type, creating an empty one if needed."""
        state = self.entity_states.get(entity_type)
        if state is None:
            state = self.entity_states[entity_type] = EntityState(entity_type)
        return state

    def clear_connection(self) -> None:
        self.connection = None
        self.close_handler = None

    def __repr__(self) -> str:
        return f"ClientState(client_id={self.client_id!r}, connected={self.is_connected!r})"
