"""Shared fixtures for the test suite."""

import asyncio
import json
from typing import Any, Dict, List

import pytest

from entitysync.core.connection import StatusConnection
from entitysync.core.status_service import DataStatusService, StatusServiceConfig

CLIENT_ID = "whatever"
EVENT_PREFIX = "service-path"


@pytest.fixture
def service():
    """Status service instance for testing."""
    return DataStatusService(StatusServiceConfig(event_prefix=EVENT_PREFIX))


async def next_turn() -> None:
    """Let the event loop run callbacks scheduled with call_soon."""
    await asyncio.sleep(0)


def connect(service: DataStatusService, client_id: str = CLIENT_ID) -> StatusConnection:
    """Connect a client and discard the stream preamble."""
    connection = StatusConnection()
    service.status_connect(client_id, connection)
    connection.drain()
    return connection


def read_events(connection: StatusConnection) -> List[Dict[str, Any]]:
    """Parse every event flushed to a connection so far."""
    text = b"".join(connection.drain()).decode("utf-8")
    events = []
    for block in text.split("\n\n"):
        if not block:
            continue
        fields = dict(line.split(": ", 1) for line in block.split("\n"))
        events.append({
            "event": fields["event"],
            "id": int(fields["id"]),
            "data": json.loads(fields["data"])
        })
    return events
