"""State models for the data status service."""

from entitysync.models.client import ClientState
from entitysync.models.entity import EntityState

__all__ = ["ClientState", "EntityState"]
