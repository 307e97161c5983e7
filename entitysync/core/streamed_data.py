"""Streamed data service delivering entities as an NDJSON response."""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Mapping, Tuple, Union

from fastapi.responses import StreamingResponse

from entitysync.core.exceptions import ConfigurationError, DataSourceError
from entitysync.core.ndjson import KeyFn, KeySpec, NDJSONEncoder

logger = logging.getLogger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"
DEFAULT_KEY_PROPERTY = "_id"

DataResult = Tuple[Mapping[str, Any], Any]
GetData = Callable[[Any], Union[DataResult, Awaitable[DataResult]]]


@dataclass
class BulkHeader:
    """Header line of a bulk NDJSON response."""

    count: int = -1
    update: bool = False
    errors: List[Any] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def merge(cls, header: Mapping[str, Any]) -> "BulkHeader":
        """Merge a data source header over the defaults."""
        header = dict(header)
        return cls(
            count=header.pop("count", -1),
            update=header.pop("update", False),
            errors=header.pop("errors", []),
            extra=header
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"count": self.count, "update": self.update, "errors": self.errors, **self.extra}


@dataclass
class StreamedDataConfig:
    """Configuration options for the streamed data service."""

    get_data: GetData
    key: Union[KeySpec, KeyFn, str] = DEFAULT_KEY_PROPERTY


class StreamedDataService:
    """
    Data service that delivers data as an NDJSON-encoded stream.

    The data source returns a header object and the entities; the response
    holds the merged header on the first line and one ``[key, entity]`` line
    per entity.
    """

    def __init__(self, get_data: GetData, key: Union[KeySpec, KeyFn, str] = DEFAULT_KEY_PROPERTY):
        if not callable(get_data):
            raise ConfigurationError("Streamed data service requires a get_data callable")
        self.config = StreamedDataConfig(get_data=get_data, key=key)
        self._make_key = KeySpec.resolve(key)

    async def get_data(self, request: Any) -> DataResult:
        """
        Get data to serve a request.

        Args:
            request: Request context

        Returns:
            Header mapping and an iterable (sync or async) of data entities

        Raises:
            DataSourceError: If the data source result is not a header and entities pair
        """
        result = self.config.get_data(request)
        if inspect.isawaitable(result):
            result = await result
        try:
            header, entities = result
        except (TypeError, ValueError) as e:
            raise DataSourceError(f"Data source must return (header, entities), got {result!r}") from e
        if header is None:
            header = {}
        if not isinstance(header, Mapping):
            raise DataSourceError(f"Data source header must be a mapping, got {header!r}")
        return header, entities

    @property
    def serve(self) -> Callable[[Any], Awaitable[StreamingResponse]]:
        """Bound serve method, usable as a route handler."""
        return self._serve

    async def _serve(self, request: Any) -> StreamingResponse:
        header, entities = await self.get_data(request)
        header = BulkHeader.merge(header)

        encoder = NDJSONEncoder(key=self._make_key, prefixes=[header.to_dict()])
        return StreamingResponse(
            self._body(encoder, entities),
            status_code=200,
            media_type=NDJSON_MEDIA_TYPE
        )

    async def _body(self, encoder: NDJSONEncoder, entities: Any) -> AsyncIterator[str]:
        try:
            async for line in encoder.aencode(entities):
                yield line
        except Exception as e:
            logger.error(f"Error streaming data: {str(e)}")
            raise

    @classmethod
    def service(cls, get_data: GetData, key: Union[KeySpec, KeyFn, str] = DEFAULT_KEY_PROPERTY):
        """Create a service and return its bound serve method."""
        return cls(get_data, key=key).serve
