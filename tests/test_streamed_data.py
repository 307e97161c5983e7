"""Unit tests for the StreamedDataService class."""

import json

import pytest

from entitysync.core.exceptions import ConfigurationError, DataSourceError
from entitysync.core.ndjson import KeySpec
from entitysync.core.streamed_data import BulkHeader, StreamedDataService

RESPONSE_OBJECTS = {"1": {"what": "ever"}, "2": {"what": "else"}}


def entity_stream(objects):
    async def entities():
        for key, obj in objects.items():
            yield {**obj, "_id": key}
    return entities()


async def read_body(response):
    return "".join([chunk async for chunk in response.body_iterator]).splitlines(keepends=True)


@pytest.fixture
def service():
    """Streamed data service instance for testing."""
    async def get_data(request):
        return {"count": len(RESPONSE_OBJECTS)}, entity_stream(RESPONSE_OBJECTS)

    return StreamedDataService(get_data, key=KeySpec.for_property("_id", "test"))


@pytest.mark.asyncio
async def test_serve_ndjson_stream(service):
    """Test the response holds a header line and one line per entity."""
    response = await service.serve(object())

    assert response.status_code == 200
    assert response.media_type == "application/x-ndjson"
    assert response.headers["content-type"] == "application/x-ndjson"

    lines = await read_body(response)
    assert len(lines) == len(RESPONSE_OBJECTS) + 1
    assert json.loads(lines[0]) == {"count": 2, "update": False, "errors": []}
    for line in lines[1:]:
        key, obj = json.loads(line)
        prefix, entity_id = key.split(".")
        assert prefix == "test"
        assert obj == {**RESPONSE_OBJECTS[entity_id], "_id": entity_id}


@pytest.mark.asyncio
async def test_serve_default_key_and_header():
    """Test header defaults and the default key property."""
    service = StreamedDataService(lambda request: ({}, [{"_id": "a"}]))

    lines = await read_body(await service.serve(object()))

    assert json.loads(lines[0]) == {"count": -1, "update": False, "errors": []}
    assert json.loads(lines[1]) == ["a", {"_id": "a"}]


@pytest.mark.asyncio
async def test_serve_header_overrides_defaults():
    """Test data source header fields override defaults and extra fields are kept."""
    header = {"update": True, "errors": ["partial"], "since": 10}
    service = StreamedDataService(lambda request: (header, []))

    lines = await read_body(await service.serve(object()))

    assert json.loads(lines[0]) == {"count": -1, "update": True, "errors": ["partial"], "since": 10}
    assert len(lines) == 1


@pytest.mark.asyncio
async def test_serve_propagates_stream_errors():
    """Test that errors raised by the entity stream are not swallowed."""
    async def failing():
        yield {"_id": "1"}
        raise RuntimeError("stream failed")

    service = StreamedDataService(lambda request: ({}, failing()))
    response = await service.serve(object())

    with pytest.raises(RuntimeError, match="stream failed"):
        await read_body(response)


@pytest.mark.asyncio
async def test_get_data_invalid_result():
    """Test an invalid data source result raises DataSourceError."""
    with pytest.raises(DataSourceError):
        await StreamedDataService(lambda request: None).serve(object())
    with pytest.raises(DataSourceError):
        await StreamedDataService(lambda request: (["not", "a", "mapping"], [])).serve(object())


def test_requires_get_data():
    """Test that a data source callable is required."""
    with pytest.raises(ConfigurationError):
        StreamedDataService(None)


@pytest.mark.asyncio
async def test_service_factory():
    """Test the service factory returns a bound serve method."""
    serve = StreamedDataService.service(lambda request: ({"count": 0}, []), key="code")

    response = await serve(object())
    assert response.status_code == 200


def test_bulk_header_merge():
    """Test merging a header over the defaults."""
    header = BulkHeader.merge({"count": 3})

    assert header.count == 3
    assert header.to_dict() == {"count": 3, "update": False, "errors": []}
