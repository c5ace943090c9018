"""Live Kafka fixtures for integration tests.

Point ``KAFKA_BOOTSTRAP_SERVERS`` at a reachable broker; the suite is skipped
when none answers.
"""

from __future__ import annotations

import os
import time
import uuid

import pytest
from confluent_kafka import KafkaException
from confluent_kafka.admin import AdminClient

from kafka_topic_operator.config.models import KafkaConfig
from kafka_topic_operator.resources.kafka_topic import TopicSpec


def _wait_for_kafka(bootstrap: str, *, timeout: int = 15) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            AdminClient({"bootstrap.servers": bootstrap}).list_topics(timeout=5)
            return True
        except KafkaException:
            time.sleep(1)
    return False


@pytest.fixture(scope="session")
def kafka_bootstrap() -> str:
    bootstrap = os.environ.get("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
    if not _wait_for_kafka(bootstrap):
        pytest.skip(f"Kafka at {bootstrap} not reachable")
    return bootstrap


@pytest.fixture
def kafka_config(kafka_bootstrap: str) -> KafkaConfig:
    return KafkaConfig(bootstrap_servers=kafka_bootstrap)


@pytest.fixture
def topic_spec() -> TopicSpec:
    return TopicSpec(
        topic_name=f"it-{uuid.uuid4().hex[:12]}",
        partitions=2,
        replication_factor=1,
    )
