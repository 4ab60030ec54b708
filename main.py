"""
HTTP host of the location movement pipeline.

The stream runtime invokes ``POST /api/batches`` with the records of one
shard. A 200 response checkpoints the batch; a 500 ``BATCH_FAILED``
response makes the runtime redeliver it.
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from config.settings import Settings, get_settings, validate_startup
from errors.handlers import register_exception_handlers
from health.service import HealthCheckService
from ingestion.decoder import StreamRecord
from ingestion.factory import create_stream_consumer
from ingestion.service import BatchResult
from middleware.request_id import RequestIDMiddleware
from telemetry.service import initialize_telemetry

logger = logging.getLogger(__name__)

SERVICE_NAME = "Location Movement Pipeline"
SERVICE_VERSION = "1.0.0"


class KinesisPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    partition_key: Optional[str] = Field(default=None, alias="partitionKey")
    sequence_number: str = Field(alias="sequenceNumber")
    data: str


class StreamEventRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    event_id: Optional[str] = Field(default=None, alias="eventID")
    kinesis: KinesisPayload

    def to_stream_record(self) -> StreamRecord:
        # eventID is "<shardId>:<sequenceNumber>"
        partition = self.event_id.split(":", 1)[0] if self.event_id else ""
        return StreamRecord(
            partition=partition,
            sequence_number=self.kinesis.sequence_number,
            data=self.kinesis.data,
            partition_key=self.kinesis.partition_key,
        )


class StreamEvent(BaseModel):
    """Batch of stream records as delivered by the stream runtime."""
    model_config = ConfigDict(populate_by_name=True)

    records: List[StreamEventRecord] = Field(alias="Records")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    The cache and sink clients are created and connected in the
    application lifespan and closed on shutdown.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        validate_startup(settings)
        telemetry = initialize_telemetry(settings)
        consumer = create_stream_consumer(settings, telemetry=telemetry)

        logger.info("Starting location movement pipeline", extra={"extra_data": {
            "environment": settings.environment.value,
            "cache_backend": settings.cache_backend,
            "sink_backend": settings.sink_backend,
            "threshold_meters": settings.movement_threshold_meters,
            "forward_failure_policy": settings.forward_failure_policy.value,
        }})

        async with consumer.lifespan():
            app.state.consumer = consumer
            app.state.health = HealthCheckService(
                cache=consumer.cache,
                sink=consumer.forwarder.sink,
                circuit_breaker=consumer.forwarder.circuit_breaker,
            )
            yield

        logger.info("Location movement pipeline stopped")

    app = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION, lifespan=lifespan)
    register_exception_handlers(app)
    app.add_middleware(RequestIDMiddleware)

    @app.post("/api/batches", response_model=BatchResult)
    async def process_batch(event: StreamEvent, request: Request) -> BatchResult:
        """
        Process one batch of stream records.

        Invalid records are skipped. Any failure that requires the batch
        to be redelivered is answered with 500 ``BATCH_FAILED``.
        """
        records = [r.to_stream_record() for r in event.records]
        partition = records[0].partition if records else ""
        return await request.app.state.consumer.process_batch(
            records,
            batch_id=request.state.request_id,
            partition=partition,
        )

    @app.get("/api/metrics")
    async def pipeline_metrics(request: Request):
        return request.app.state.consumer.metrics.snapshot()

    @app.get("/health")
    async def health_basic(request: Request):
        """Returns 200 OK when the service is accepting requests."""
        result = await request.app.state.health.check_health()
        return {
            "status": result["status"],
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "timestamp": result["timestamp"],
        }

    @app.get("/health/ready")
    async def health_ready(request: Request):
        """
        Readiness check of the location cache and the event sink.

        Returns:
            200 when healthy or degraded, 503 with the failure reasons
            when the cache or the sink is unreachable.
        """
        health_status = await request.app.state.health.check_readiness()
        response_data = {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            **health_status.to_dict(),
        }

        if not health_status.is_ready:
            response_data["failure_reasons"] = [
                {"dependency": dep.name, "error": dep.error}
                for dep in health_status.dependencies
                if not dep.healthy
            ]
            return JSONResponse(status_code=503, content=response_data)

        return response_data

    @app.get("/health/live")
    async def health_live(request: Request):
        """Returns 200 OK while the process is running."""
        result = await request.app.state.health.check_liveness()
        return {
            "status": result["status"],
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "timestamp": result["timestamp"],
        }

    return app


if __name__ == "__main__":
    import os

    import uvicorn

    port = int(os.environ.get("PORT", 8080))
    uvicorn.run(create_app(), host="0.0.0.0", port=port, log_level="info")
