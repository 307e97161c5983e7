"""Main FastAPI application with entity status and streamed data endpoints."""

import logging
import uuid
from typing import Any, Dict, Optional, Union

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from entitysync.config import Settings, get_settings
from entitysync.core.connection import StatusConnection
from entitysync.core.exceptions import DataSourceError
from entitysync.core.ndjson import KeyFn, KeySpec
from entitysync.core.status_service import SESSION_COOKIE, DataStatusService, StatusServiceConfig, request_client_id
from entitysync.core.streamed_data import DEFAULT_KEY_PROPERTY, GetData, StreamedDataService

logger = logging.getLogger(__name__)


class RegisterRequest(BaseModel):
    entity_type: str = Field(alias="entityType")
    times: Dict[str, Union[int, float]] = Field(default_factory=dict)


def route_base(event_prefix: str) -> str:
    prefix = event_prefix.strip("/")
    return f"/{prefix}" if prefix else ""


def create_app(settings: Optional[Settings] = None,
               get_data: Optional[GetData] = None,
               key: Union[KeySpec, KeyFn, str] = DEFAULT_KEY_PROPERTY) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Application settings, read from the environment if omitted
        get_data: Data source for the NDJSON endpoint; the endpoint is only
            mounted when a data source is given
        key: Entity key specification for the NDJSON endpoint

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(title=settings.app_name, version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    status_service = DataStatusService(StatusServiceConfig(event_prefix=settings.event_prefix))
    app.state.settings = settings
    app.state.status_service = status_service
    base = route_base(settings.event_prefix)

    @app.get(f"{base}/status")
    async def status_endpoint(request: Request):
        """Event stream of entity status changes for the requesting client."""
        client_id = request_client_id(request)
        new_session = client_id is None
        if new_session:
            client_id = str(uuid.uuid4())

        connection = StatusConnection()
        status_service.status_connect(client_id, connection)
        response = EventSourceResponse(
            connection.body(),
            status_code=connection.status_code,
            headers=connection.headers,
            ping=settings.sse_ping_interval,
            send_timeout=connection.send_timeout,
        )
        if new_session:
            response.set_cookie(SESSION_COOKIE, client_id)
        return response

    @app.post(f"{base}/register")
    async def register_endpoint(body: RegisterRequest, request: Request):
        """Register status events for an entity type."""
        client_id = request_client_id(request)
        if client_id is None:
            raise HTTPException(status_code=400, detail="Missing session id")
        status_service.register_entity_type(client_id, body.entity_type, body.times)
        return {"registered": body.entity_type}

    @app.post(f"{base}/timestamps")
    async def timestamps_endpoint(superseded: Dict[str, Union[int, float]]):
        """Record timestamp changes."""
        status_service.record_timestamp_changes(superseded)
        return {"accepted": len(superseded)}

    if get_data is not None:
        data_service = StreamedDataService(get_data, key=key)
        app.state.data_service = data_service

        @app.get(f"{base}/data")
        async def data_endpoint(request: Request):
            """NDJSON stream of data entities."""
            try:
                return await data_service.serve(request)
            except DataSourceError as e:
                logger.error(f"Data source error: {str(e)}")
                raise HTTPException(status_code=500, detail=str(e)) from e

    @app.get("/health")
    async def health_check() -> Dict[str, Any]:
        """Health check endpoint."""
        return {
            "status": "healthy",
            "connected_clients": status_service.connected_clients,
            "last_event_id": status_service.last_event_id
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "entitysync.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )
