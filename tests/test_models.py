"""Unit tests for model classes."""

from entitysync.models.client import ClientState
from entitysync.models.entity import EntityState


def test_entity_state_stage():
    """Test staging only accepts registered names with newer times."""
    state = EntityState("test", times={"a": 10, "b": 0})

    assert not state.stage({"a": 10, "z": 100})
    assert state.superseded is None

    assert state.stage({"a": 20, "b": 5, "z": 100})
    assert state.superseded == {"a": 20, "b": 5}
    assert state.times == {"a": 10, "b": 0}


def test_entity_state_acknowledge():
    """Test acknowledging merges pending changes into times."""
    state = EntityState("test", times={"a": 0, "b": 0})
    state.stage({"a": 7})

    assert state.acknowledge() == {"a": 7}
    assert state.times == {"a": 7, "b": 0}
    assert state.superseded is None
    assert not state.stage({"a": 7})


def test_client_state():
    """Test ClientState creation and entity state lookup."""
    client = ClientState("session-1")

    assert client.client_id == "session-1"
    assert not client.is_connected
    assert client.entity_states == {}

    entity_state = client.entity_state("supplier:project-1")
    assert entity_state.entity_type == "supplier:project-1"
    assert entity_state.times == {}
    assert client.entity_state("supplier:project-1") is entity_state

    client.connection = object()
    client.close_handler = lambda connection: None
    assert client.is_connected
    client.clear_connection()
    assert client.connection is None
    assert client.close_handler is None
