"""
Partition runner: one worker per stream partition.

Each poll yields at most one batch per partition. Batches of different
partitions are processed concurrently, the records of one partition
strictly in order. A partition whose batch succeeded is checkpointed;
a partition whose batch failed is rewound so the whole batch is
delivered again on the next poll.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List

from errors.exceptions import BatchError
from ingestion.decoder import StreamRecord
from ingestion.service import BatchResult, StreamConsumer

logger = logging.getLogger(__name__)


@dataclass
class PartitionBatch:
    """
    Consecutive records of one partition.

    Attributes:
        partition: Partition identifier
        records: Records in stream order
        first_offset: Offset of the first record
        last_offset: Offset of the last record
    """
    partition: str
    records: List[StreamRecord] = field(default_factory=list)
    first_offset: int = 0
    last_offset: int = 0


class StreamSource(ABC):
    """A partitioned, replayable stream of location ping records."""

    @abstractmethod
    async def poll(self) -> List[PartitionBatch]:
        """Return at most one batch per partition; empty when idle."""

    @abstractmethod
    async def commit(self, batch: PartitionBatch) -> None:
        """Checkpoint the partition past ``batch``."""

    @abstractmethod
    async def rewind(self, batch: PartitionBatch) -> None:
        """Redeliver ``batch`` from its first record on a later poll."""

    async def close(self) -> None:
        """Release the stream client."""


class PartitionRunner:
    """
    Drives a StreamConsumer from a StreamSource.

    Example:
        runner = PartitionRunner(source, consumer)
        async with consumer.lifespan():
            await runner.run_forever()
    """

    def __init__(self, source: StreamSource, consumer: StreamConsumer, idle_sleep: float = 0.1):
        self.source = source
        self.consumer = consumer
        self.idle_sleep = idle_sleep
        self._stopping = asyncio.Event()

    async def _run_partition(self, batch: PartitionBatch) -> bool:
        batch_id = f"{batch.partition}:{batch.first_offset}-{batch.last_offset}"
        try:
            await self.consumer.process_batch(
                batch.records, batch_id=batch_id, partition=batch.partition
            )
        except BatchError as e:
            logger.warning(
                "Rewinding partition %s to offset %d",
                batch.partition,
                batch.first_offset,
                extra={"extra_data": {
                    "partition": batch.partition,
                    "first_offset": batch.first_offset,
                    "error": e.message,
                }}
            )
            await self._checkpoint(self.source.rewind, batch)
            return False

        committed = await self._checkpoint(self.source.commit, batch)
        if not committed:
            await self._checkpoint(self.source.rewind, batch)
        return committed

    async def _checkpoint(self, action, batch: PartitionBatch) -> bool:
        """
        Commit or rewind one partition.

        A failure is logged and confined to the partition. A batch whose
        commit failed is rewound and delivered again.
        """
        try:
            await action(batch)
        except Exception as e:
            logger.error(
                "Failed to %s partition %s at offsets %d-%d: %s",
                getattr(action, "__name__", "checkpoint"),
                batch.partition,
                batch.first_offset,
                batch.last_offset,
                e,
                extra={"extra_data": {
                    "partition": batch.partition,
                    "first_offset": batch.first_offset,
                    "last_offset": batch.last_offset,
                    "error_type": type(e).__name__,
                }}
            )
            return False
        return True

    async def run_once(self) -> Dict[str, bool]:
        """
        Poll once and process every returned partition batch.

        Returns:
            Mapping of partition to whether its batch was committed.
        """
        batches = await self.source.poll()
        if not batches:
            return {}

        outcomes = await asyncio.gather(*(self._run_partition(b) for b in batches))
        return {b.partition: ok for b, ok in zip(batches, outcomes)}

    async def run_forever(self) -> None:
        """Poll and process until stop() is called, then close the source."""
        logger.info("Partition runner started")
        try:
            while not self._stopping.is_set():
                outcomes = await self.run_once()
                if not outcomes:
                    await asyncio.sleep(self.idle_sleep)
                elif not all(outcomes.values()):
                    # back off before the rewound batches are redelivered
                    await asyncio.sleep(self.idle_sleep)
        finally:
            await self.source.close()
            logger.info("Partition runner stopped")

    def stop(self) -> None:
        self._stopping.set()
