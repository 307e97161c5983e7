"""Entity data streaming and status notification services."""

from entitysync.core.connection import StatusConnection
from entitysync.core.ndjson import KeySpec, NDJSONEncoder, make_key_fn
from entitysync.core.status_service import DataStatusService, StatusServiceConfig
from entitysync.core.streamed_data import StreamedDataService

__all__ = [
    "DataStatusService",
    "KeySpec",
    "NDJSONEncoder",
    "StatusConnection",
    "StatusServiceConfig",
    "StreamedDataService",
    "make_key_fn",
]
