"""
Kafka stream source.

Producers key each message by userID, so every ping of a user lands on
the same partition and is seen by one worker in order. Message values
are the base64 JSON payload. Offsets are committed manually once a
partition's batch has been processed.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from confluent_kafka import Consumer, KafkaError, TopicPartition

from ingestion.decoder import StreamRecord
from ingestion.runner import PartitionBatch, StreamSource

logger = logging.getLogger(__name__)


class KafkaStreamSource(StreamSource):
    """
    StreamSource over a Kafka topic.

    Attributes:
        topic: Topic carrying the location pings
        batch_size: Maximum messages fetched per poll, across partitions
        poll_timeout: Seconds to wait for messages per poll
    """

    def __init__(
        self,
        bootstrap_servers: str,
        topic: str,
        group_id: str,
        batch_size: int = 100,
        poll_timeout: float = 1.0,
        consumer: Optional[Consumer] = None,
    ):
        self.topic = topic
        self.batch_size = batch_size
        self.poll_timeout = poll_timeout

        if consumer is None:
            consumer = Consumer({
                "bootstrap.servers": bootstrap_servers,
                "group.id": group_id,
                "auto.offset.reset": "earliest",
                "enable.auto.commit": False,
            })
        self.consumer = consumer
        self.consumer.subscribe([topic])

    @classmethod
    def from_settings(cls, settings) -> "KafkaStreamSource":
        return cls(
            bootstrap_servers=settings.kafka_bootstrap_servers,
            topic=settings.kafka_topic,
            group_id=settings.kafka_group_id,
            batch_size=settings.batch_size,
            poll_timeout=settings.poll_timeout_seconds,
        )

    async def poll(self) -> List[PartitionBatch]:
        messages = await asyncio.to_thread(
            self.consumer.consume, self.batch_size, self.poll_timeout
        )

        batches: Dict[str, PartitionBatch] = {}
        for msg in messages:
            if msg.error():
                if msg.error().code() != KafkaError._PARTITION_EOF:
                    logger.error("Kafka consumer error: %s", msg.error())
                continue

            partition = str(msg.partition())
            offset = msg.offset()
            key = msg.key()
            value = msg.value() or b""

            batch = batches.get(partition)
            if batch is None:
                batch = batches[partition] = PartitionBatch(
                    partition=partition, first_offset=offset, last_offset=offset
                )
            batch.records.append(StreamRecord(
                partition=partition,
                sequence_number=str(offset),
                # undecodable bytes are rejected by the record decoder
                data=value.decode("utf-8", errors="replace"),
                partition_key=key.decode("utf-8", errors="replace") if key else None,
            ))
            batch.last_offset = offset

        return list(batches.values())

    async def commit(self, batch: PartitionBatch) -> None:
        offsets = [TopicPartition(self.topic, int(batch.partition), batch.last_offset + 1)]
        await asyncio.to_thread(self.consumer.commit, offsets=offsets, asynchronous=False)

    async def rewind(self, batch: PartitionBatch) -> None:
        await asyncio.to_thread(
            self.consumer.seek,
            TopicPartition(self.topic, int(batch.partition), batch.first_offset),
        )

    async def close(self) -> None:
        await asyncio.to_thread(self.consumer.close)
