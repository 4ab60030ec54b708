"""
Stream consumer for batches of location pings.

For each record of a batch, in order:

1. decode and validate the ping (invalid records are logged and skipped,
   the cache is left untouched),
2. read the user's last position from the location cache,
3. classify the ping as NEW, UNCHANGED or MOVED,
4. forward NEW and MOVED pings to the event sink,
5. store the ping as the user's last position.

A cache failure, a forward failure under the ``fail_batch`` policy, any
unexpected error and the batch deadline abort the batch with a
BatchError; the caller then redelivers the whole batch. Reprocessing a
batch converges to the same cache state, but events forwarded before
the failure are appended again.
"""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager, nullcontext
from typing import AsyncIterator, Iterable, List, Optional

from pydantic import BaseModel

from config.settings import ForwardFailurePolicy
from errors.exceptions import (
    BatchError,
    CacheError,
    ForwardError,
    PingValidationError,
    batch_failed,
)
from forwarding.forwarder import EventForwarder
from ingestion.decoder import StreamRecord, decode_record
from location_cache.store import LocationCache
from movement.evaluator import MovementEvaluator
from movement.models import CachedLocation, Classification, MovementEvent
from telemetry.metrics import PipelineMetrics, metrics as default_metrics
from telemetry.service import TelemetryService, batch_context, get_telemetry_service

logger = logging.getLogger(__name__)

DEFAULT_BATCH_TIMEOUT_SECONDS = 10.0


class BatchResult(BaseModel):
    """
    Outcome of a processed batch.

    Attributes:
        total: Records processed, skipped ones included
        new: Pings of users with no cached position
        moved: Pings beyond the movement threshold
        unchanged: Pings within the movement threshold
        skipped: Records that failed decoding or validation
        forward_failures: Events that could not be forwarded (best_effort only)
        last_sequence_number: Sequence number of the last processed record
    """

    total: int = 0
    new: int = 0
    moved: int = 0
    unchanged: int = 0
    skipped: int = 0
    forward_failures: int = 0
    last_sequence_number: Optional[str] = None


class StreamConsumer:
    """
    Processes batches of stream records against the cache and sink.

    Cache, forwarder and evaluator are constructed by the caller and
    injected. ``lifespan()`` connects and releases the cache and sink
    clients around the batches processed inside it.
    """

    def __init__(
        self,
        cache: LocationCache,
        forwarder: EventForwarder,
        evaluator: Optional[MovementEvaluator] = None,
        failure_policy: ForwardFailurePolicy = ForwardFailurePolicy.FAIL_BATCH,
        batch_timeout_seconds: float = DEFAULT_BATCH_TIMEOUT_SECONDS,
        region: Optional[str] = None,
        telemetry: Optional[TelemetryService] = None,
        metrics: Optional[PipelineMetrics] = None,
    ):
        if batch_timeout_seconds <= 0:
            raise ValueError("batch_timeout_seconds must be positive")
        self.cache = cache
        self.forwarder = forwarder
        self.evaluator = evaluator or MovementEvaluator()
        self.failure_policy = ForwardFailurePolicy(failure_policy)
        self.batch_timeout_seconds = batch_timeout_seconds
        self.region = region
        self.telemetry = telemetry or get_telemetry_service()
        self.metrics = metrics or default_metrics

    @classmethod
    def from_settings(
        cls,
        settings,
        cache: LocationCache,
        forwarder: EventForwarder,
        telemetry: Optional[TelemetryService] = None,
        metrics: Optional[PipelineMetrics] = None,
    ) -> "StreamConsumer":
        return cls(
            cache=cache,
            forwarder=forwarder,
            evaluator=MovementEvaluator.from_settings(settings),
            failure_policy=settings.forward_failure_policy,
            batch_timeout_seconds=settings.batch_timeout_seconds,
            region=settings.region,
            telemetry=telemetry,
            metrics=metrics,
        )

    @asynccontextmanager
    async def lifespan(self) -> AsyncIterator["StreamConsumer"]:
        """Connect the cache and sink clients, and release them on exit."""
        await self.cache.connect()
        try:
            await self.forwarder.sink.connect()
            try:
                yield self
            finally:
                await self.forwarder.sink.disconnect()
        finally:
            await self.cache.disconnect()

    def _span(self, service: str, operation: str, user_id: str):
        if self.telemetry is None:
            return nullcontext()
        return self.telemetry.create_external_service_span(
            service, operation, {"user.id": user_id}
        )

    async def process_batch(
        self,
        records: Iterable[StreamRecord],
        batch_id: Optional[str] = None,
        partition: str = "",
    ) -> BatchResult:
        """
        Process ``records`` in order.

        Args:
            records: Records of one partition, in stream order
            batch_id: Correlation id for the logs, generated if omitted
            partition: Partition the records came from

        Returns:
            BatchResult with the per-classification counts.

        Raises:
            BatchError: If the batch must be redelivered.
        """
        records = list(records)
        batch_id = batch_id or str(uuid.uuid4())
        result = BatchResult()

        with batch_context(batch_id, partition):
            start = time.perf_counter()
            logger.info(
                "Processing batch of %d records",
                len(records),
                extra={"extra_data": {"batch_size": len(records), "partition": partition}}
            )

            try:
                await asyncio.wait_for(
                    self._process_records(records, result),
                    timeout=self.batch_timeout_seconds,
                )
            except asyncio.TimeoutError as e:
                self.metrics.record_batch_failure()
                pending = records[result.total].sequence_number if result.total < len(records) else None
                logger.error(
                    "Batch timed out after %.1f seconds",
                    self.batch_timeout_seconds,
                    extra={"extra_data": {"processed": result.total, "sequence_number": pending}}
                )
                raise batch_failed(
                    f"Batch did not complete within {self.batch_timeout_seconds} seconds",
                    sequence_number=pending,
                    processed=result.total,
                    details={"timeout_seconds": self.batch_timeout_seconds},
                ) from e
            except BatchError as e:
                self.metrics.record_batch_failure()
                logger.error(
                    "Batch failed: %s",
                    e.message,
                    extra={"extra_data": e.details}
                )
                raise

            duration_ms = (time.perf_counter() - start) * 1000
            self.metrics.record_batch(result)
            if self.telemetry:
                self.telemetry.record_metric(
                    "batch_duration_ms", duration_ms, tags={"partition": partition}
                )

            logger.info(
                "Batch complete: %d new, %d moved, %d unchanged, %d skipped",
                result.new,
                result.moved,
                result.unchanged,
                result.skipped,
                extra={"extra_data": {**result.model_dump(), "duration_ms": duration_ms}}
            )
            return result

    async def _process_records(self, records: List[StreamRecord], result: BatchResult) -> None:
        for record in records:
            try:
                await self._process_record(record, result)
            except PingValidationError as e:
                result.skipped += 1
                logger.warning(
                    "Skipping invalid record %s: %s",
                    record.sequence_number,
                    e.message,
                    extra={"extra_data": {
                        "sequence_number": record.sequence_number,
                        "partition_key": record.partition_key,
                        "error_code": e.error_code.value,
                        **(e.details or {}),
                    }}
                )
            except CacheError as e:
                raise batch_failed(
                    f"Location cache failure: {e.message}",
                    sequence_number=record.sequence_number,
                    processed=result.total,
                    details={"cause": e.to_dict()},
                ) from e
            except ForwardError as e:
                raise batch_failed(
                    f"Could not forward movement event: {e.message}",
                    sequence_number=record.sequence_number,
                    processed=result.total,
                    details={"cause": e.to_dict()},
                ) from e
            except Exception as e:
                logger.exception("Unexpected error processing record %s", record.sequence_number)
                raise batch_failed(
                    f"Unexpected error: {type(e).__name__}",
                    sequence_number=record.sequence_number,
                    processed=result.total,
                ) from e

            result.total += 1
            result.last_sequence_number = record.sequence_number

    async def _process_record(self, record: StreamRecord, result: BatchResult) -> None:
        ping = decode_record(record)

        with self._span("cache", "get", ping.user_id):
            previous = await self.cache.get(ping.user_id)

        assessment = self.evaluator.assess(previous, ping)
        classification = assessment.classification

        if classification is Classification.UNCHANGED:
            result.unchanged += 1
        else:
            event = MovementEvent.from_ping(
                ping,
                classification,
                distance_meters=assessment.distance_meters,
                region=self.region,
            )
            try:
                await self.forwarder.forward(event)
            except ForwardError as e:
                if self.failure_policy is ForwardFailurePolicy.FAIL_BATCH:
                    raise
                result.forward_failures += 1
                logger.error(
                    "Dropping %s event for user %s: %s",
                    classification.value,
                    ping.user_id,
                    e.message,
                    extra={"extra_data": e.details}
                )

            if classification is Classification.NEW:
                result.new += 1
            else:
                result.moved += 1

        with self._span("cache", "set", ping.user_id):
            await self.cache.set(ping.user_id, CachedLocation.from_ping(ping))

