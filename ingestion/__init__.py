"""
Ingestion module for the stream of location pings.

Decodes stream records, runs them through the movement pipeline in
batches and drives one worker per stream partition.
"""

from ingestion.decoder import StreamRecord, decode_record, decode_payload, encode_ping
from ingestion.service import BatchResult, StreamConsumer
from ingestion.runner import PartitionBatch, PartitionRunner, StreamSource
from ingestion.factory import create_stream_consumer

__all__ = [
    "StreamRecord",
    "decode_record",
    "decode_payload",
    "encode_ping",
    "BatchResult",
    "StreamConsumer",
    "PartitionBatch",
    "PartitionRunner",
    "StreamSource",
    "create_stream_consumer",
]
