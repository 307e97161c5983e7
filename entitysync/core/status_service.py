"""Data status service delivering entity change notifications over Server-Sent Events."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from entitysync.core.broadcast import StatusBroadcastProtocol, StatusEvent
from entitysync.core.connection import StatusConnection
from entitysync.core.exceptions import ConfigurationError
from entitysync.models.client import ClientState

logger = logging.getLogger(__name__)

SESSION_HEADER = "x-session-id"
SESSION_COOKIE = "session_id"


@dataclass
class StatusServiceConfig:
    """Configuration options for the data status service."""

    event_prefix: str = ""


def request_client_id(request: Any) -> Optional[str]:
    """
    Extract the client id from a request.

    Looks for a ``session_id`` attribute, then the session header and the
    session cookie.
    """
    client_id = getattr(request, "session_id", None)
    if client_id:
        return client_id
    headers = getattr(request, "headers", None) or {}
    client_id = headers.get(SESSION_HEADER)
    if client_id:
        return client_id
    cookies = getattr(request, "cookies", None) or {}
    return cookies.get(SESSION_COOKIE)


class DataStatusService:
    """
    Delivers data entity status events that inform clients of changes to server data.

    The ``status_server`` handler is assigned to the event stream route, and
    timestamp changes are reported to ``record_timestamp_changes()``. Many
    changes recorded within one event loop iteration are coalesced into a
    single event per client and entity type.
    """

    def __init__(self, config: Optional[StatusServiceConfig] = None,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.config = config or StatusServiceConfig()
        self._loop = loop
        self._status_id = 0
        self._status_clients: Dict[str, ClientState] = {}

    @property
    def event_prefix(self) -> str:
        return self.config.event_prefix

    @property
    def last_event_id(self) -> int:
        return self._status_id

    @property
    def connected_clients(self) -> int:
        return sum(1 for state in self._status_clients.values() if state.is_connected)

    def client_state(self, client_id: str) -> Optional[ClientState]:
        """Look up a client's state without creating it."""
        return self._status_clients.get(client_id)

    def register_entity_type(self, client_id: str, entity_type: str, times: Mapping[str, Any]) -> None:
        """
        Register status events for an entity type.

        No-op if events are already registered for the entity type. The
        timestamp names in ``times`` restrict which timestamps indicate
        changes for the entity type; the times may be zero-valued placeholders.

        Args:
            client_id: Client id, conventionally a session id
            entity_type: Entity name, possibly followed by a context
                identifier separated by a colon (e.g. ``supplier:<project-id>``)
            times: Timestamp times indexed by timestamp name
        """
        client_state = self._get_client_state(client_id)
        if not client_state.is_connected:
            logger.info(f"Registering {entity_type} entity type, no socket for client {client_id}")
        if entity_type not in client_state.entity_states:
            client_state.entity_state(entity_type).times.update(times)

    def record_timestamp_changes(self, superseded: Mapping[str, Any]) -> None:
        """
        Record timestamp changes for every client and registered entity type.

        Must be called from the event loop thread. Never blocks: changes are
        staged and a flush is scheduled for the next loop iteration.

        Args:
            superseded: Timestamp times indexed by timestamp name
        """
        loop = self._get_loop()
        for client_id, client_state in list(self._status_clients.items()):
            for entity_type in list(client_state.entity_states):
                self._update_timestamps(loop, client_id, entity_type, superseded)

    def record_timestamp_changes_threadsafe(self, superseded: Mapping[str, Any]) -> None:
        """
        Record timestamp changes from a thread other than the event loop's.

        Raises:
            ConfigurationError: If no event loop is bound to the service
        """
        if self._loop is None:
            raise ConfigurationError("No event loop bound to the status service")
        self._loop.call_soon_threadsafe(self.record_timestamp_changes, dict(superseded))

    @property
    def status_server(self) -> Callable[[Any, StatusConnection], None]:
        """Bound status server handler taking ``(request, connection)``."""
        return self._status_server

    def _status_server(self, request: Any, connection: StatusConnection) -> None:
        client_id = request_client_id(request)
        if not client_id:
            raise ConfigurationError("Status request has no client id")
        self.status_connect(client_id, connection)

    def status_connect(self, client_id: str, connection: StatusConnection) -> None:
        """
        Bind a live connection to a client and write the event stream preamble.

        Args:
            client_id: Client id, conventionally a session id
            connection: Push connection for the client

        Raises:
            ConnectionClosedError: If the connection is already closed
        """
        connection.ensure_open()
        self._get_loop()
        client_state = self._get_client_state(client_id)

        if client_state.close_handler is not None:
            logger.warning(f"Entity status request from {client_id}, request already active")
            client_state.connection.remove_close_listener(client_state.close_handler)

        def close_handler(closed: StatusConnection) -> None:
            state = self._get_client_state(client_id)
            if state.connection is not closed:
                return
            state.clear_connection()
            logger.info(f"Status connection closed for client {client_id}")

        client_state.connection = connection
        client_state.close_handler = close_handler
        connection.add_close_listener(close_handler)

        connection.disable_timeout()
        StatusBroadcastProtocol.write_preamble(connection)
        logger.info(f"Status connection opened for client {client_id}")

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # not on a running loop; fall back to the bound one
            if self._loop is None:
                raise
            return self._loop
        self._loop = loop
        return loop

    def _get_client_state(self, client_id: str) -> ClientState:
        client_state = self._status_clients.get(client_id)
        if client_state is None:
            client_state = self._status_clients[client_id] = ClientState(client_id)
        return client_state

    def _update_timestamps(self, loop: asyncio.AbstractEventLoop, client_id: str,
                           entity_type: str, superseded: Mapping[str, Any]) -> None:
        entity_state = self._get_client_state(client_id).entity_state(entity_type)
        if entity_state.stage(superseded) and not entity_state.has_pending_flush:
            entity_state.pending_flush = loop.call_soon(self._scheduled_change, client_id, entity_type)

    def _scheduled_change(self, client_id: str, entity_type: str) -> None:
        entity_state = self._get_client_state(client_id).entity_state(entity_type)
        entity_state.pending_flush = None
        self._status_change(client_id, entity_type)

    def _status_change(self, client_id: str, entity_type: str) -> None:
        client_state = self._get_client_state(client_id)
        connection = client_state.connection
        if connection is None:
            logger.debug(f"No connection for client {client_id}, {entity_type} change left pending")
            return
        entity_state = client_state.entity_state(entity_type)
        if not entity_state.superseded:
            return

        self._status_id += 1
        event = StatusEvent(
            name=f"{self.event_prefix}/{entity_type}",
            id=self._status_id,
            entity_type=entity_type,
            superseded=entity_state.acknowledge()
        )
        StatusBroadcastProtocol.send(connection, event)
        logger.debug(f"Sent {event.name} event {event.id} to client {client_id}")
