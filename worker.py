"""
Stream host of the location movement pipeline.

Consumes the Kafka topic of location pings with one worker per
partition until SIGINT or SIGTERM.
"""

import asyncio
import logging
import signal
from typing import Optional

from config.settings import Settings, get_settings, validate_startup
from ingestion.factory import create_stream_consumer
from ingestion.kafka_source import KafkaStreamSource
from ingestion.runner import PartitionRunner
from telemetry.service import initialize_telemetry

logger = logging.getLogger(__name__)


async def run(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    validate_startup(settings)
    telemetry = initialize_telemetry(settings)

    consumer = create_stream_consumer(settings, telemetry=telemetry)
    source = KafkaStreamSource.from_settings(settings)
    runner = PartitionRunner(source, consumer)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, runner.stop)

    logger.info("Consuming %s from %s", settings.kafka_topic, settings.kafka_bootstrap_servers)
    async with consumer.lifespan():
        await runner.run_forever()


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
