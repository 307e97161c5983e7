"""Server-Sent Events framing for entity status notifications."""

import json
from dataclasses import dataclass
from typing import Any, Dict

from entitysync.core.connection import StatusConnection

EVENT_STREAM_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
}


@dataclass
class StatusEvent:
    """One entity status notification."""

    name: str
    id: int
    entity_type: str
    superseded: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"entityType": self.entity_type, "superseded": self.superseded}


class StatusBroadcastProtocol:
    """Writes the preamble and notification blocks of an event stream."""

    @staticmethod
    def write_preamble(connection: StatusConnection) -> None:
        connection.write_head(200, EVENT_STREAM_HEADERS)
        connection.write("\n")
        connection.flush()

    @staticmethod
    def format_event(event: StatusEvent) -> str:
        """
        Format a notification as ``event``, ``id`` and ``data`` lines
        followed by a blank separator line.
        """
        data = json.dumps(event.to_dict(), separators=(",", ":"), ensure_ascii=False)
        return f"event: {event.name}\nid: {event.id}\ndata: {data}\n\n"

    @classmethod
    def send(cls, connection: StatusConnection, event: StatusEvent) -> None:
        connection.write(cls.format_event(event))
        # compression middleware buffers output until flushed
        connection.flush()
