"""Entity state model tracking timestamps for one watched entity type."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional


@dataclass
class EntityState:
    """Timestamps and pending changes for one (client, entity type) pair."""

    entity_type: str
    times: Dict[str, Any] = field(default_factory=dict)
    superseded: Optional[Dict[str, Any]] = None
    pending_flush: Optional[asyncio.Handle] = None

    def stage(self, changes: Mapping[str, Any]) -> bool:
        """
        Stage timestamp changes that supersede the acknowledged times.

        Only names already present in ``times`` are considered, and only
        when the new time is strictly greater than the acknowledged one.

        Returns:
            True if a change is pending after staging
        """
        for name, time in changes.items():
            if name not in self.times:
                continue
            if time > self.times[name]:
                if self.superseded is None:
                    self.superseded = {}
                self.superseded[name] = time
        return bool(self.superseded)

    def acknowledge(self) -> Dict[str, Any]:
        """Merge pending changes into ``times`` and return them."""
        superseded = self.superseded or {}
        self.times.update(superseded)
        self.superseded = None
        return superseded

    @property
    def has_pending_flush(self) -> bool:
        return self.pending_flush is not None

    def __repr__(self) -> str:
        return f"EntityState(entity_type={self.entity_type!r}, times={self.times!r}, superseded={self.superseded!r})"
