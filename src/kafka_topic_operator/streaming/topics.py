"""Kafka admin adapter: create, delete and look up declared topics."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

import structlog
from confluent_kafka import KafkaError, KafkaException
from confluent_kafka.admin import AdminClient, NewTopic  # type: ignore[attr-defined]

from kafka_topic_operator.config.models import KafkaConfig
from kafka_topic_operator.reconcile.errors import ProvisioningError
from kafka_topic_operator.resources.kafka_topic import TopicSpec
from kafka_topic_operator.streaming.auth import build_kafka_auth_config

logger = structlog.get_logger()

T = TypeVar("T")


def _error_code(exc: BaseException) -> int | None:
    """Extract the librdkafka error code from an admin future's exception."""
    if isinstance(exc, KafkaException) and exc.args:
        err = exc.args[0]
        if isinstance(err, KafkaError):
            return err.code()
    return None


class AdminClientPool:
    """One shared AdminClient per bootstrap server.

    Clients are created on first use and reused by every pass that targets
    the same broker.  They hold no per-resource state.
    """

    def __init__(self, config: KafkaConfig) -> None:
        self._config = config
        self._clients: dict[str, AdminClient] = {}

    def get(self, bootstrap_servers: str) -> AdminClient:
        client = self._clients.get(bootstrap_servers)
        if client is None:
            admin_conf: dict[str, Any] = {"bootstrap.servers": bootstrap_servers}
            admin_conf.update(build_kafka_auth_config(self._config))
            client = AdminClient(admin_conf)
            self._clients[bootstrap_servers] = client
            logger.info("kafka.admin_client_created", bootstrap_servers=bootstrap_servers)
        return client

    def __len__(self) -> int:
        return len(self._clients)


class KafkaTopicProvisioner:
    """Topic provisioner backed by ``confluent_kafka.admin.AdminClient``.

    ``create`` and ``delete`` query the cluster first and only act when needed;
    a concurrent "already exists" / "unknown topic" answer from the broker is
    treated as success as well.
    """

    def __init__(self, config: KafkaConfig, pool: AdminClientPool | None = None) -> None:
        self._config = config
        self._pool = pool or AdminClientPool(config)

    def _broker(self, spec: TopicSpec) -> str:
        return spec.bootstrap_server or self._config.bootstrap_servers

    def _admin(self, spec: TopicSpec) -> AdminClient:
        try:
            return self._pool.get(self._broker(spec))
        except KafkaException as exc:
            msg = f"Cannot create admin client for {self._broker(spec)}: {exc}"
            raise ProvisioningError(msg, topic=spec.topic_name) from exc

    @staticmethod
    async def _run(func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    # -- Metadata --------------------------------------------------------------

    def _topic_names(self, admin: AdminClient, topic: str) -> set[str]:
        try:
            meta = admin.list_topics(timeout=self._config.metadata_timeout_seconds)
        except KafkaException as exc:
            msg = f"Failed to fetch topic metadata: {exc}"
            raise ProvisioningError(msg, topic=topic) from exc
        return set(meta.topics.keys())

    async def exists(self, spec: TopicSpec) -> bool:
        admin = self._admin(spec)
        names = await self._run(self._topic_names, admin, spec.topic_name)
        return spec.topic_name in names

    # -- Create ----------------------------------------------------------------

    def _create_blocking(self, admin: AdminClient, spec: TopicSpec) -> bool:
        topic = spec.topic_name
        if topic in self._topic_names(admin, topic):
            return False
        new_topic = NewTopic(
            topic,
            num_partitions=spec.partitions,
            replication_factor=spec.replication_factor,
        )
        futures = admin.create_topics([new_topic])
        try:
            futures[topic].result()
        except Exception as exc:
            if _error_code(exc) == KafkaError.TOPIC_ALREADY_EXISTS:
                return False
            msg = f"Failed to create topic {topic}: {exc}"
            raise ProvisioningError(msg, topic=topic) from exc
        return True

    async def create(self, spec: TopicSpec) -> None:
        admin = self._admin(spec)
        created = await self._run(self._create_blocking, admin, spec)
        if created:
            logger.info(
                "topic.created",
                topic=spec.topic_name,
                partitions=spec.partitions,
                replication_factor=spec.replication_factor,
                bootstrap_servers=self._broker(spec),
            )
        else:
            logger.info("topic.exists", topic=spec.topic_name)

    # -- Delete ----------------------------------------------------------------

    def _delete_blocking(self, admin: AdminClient, spec: TopicSpec) -> bool:
        topic = spec.topic_name
        if topic not in self._topic_names(admin, topic):
            return False
        futures = admin.delete_topics(
            [topic],
            operation_timeout=self._config.delete_operation_timeout_seconds,
        )
        try:
            futures[topic].result()
        except Exception as exc:
            if _error_code(exc) == KafkaError.UNKNOWN_TOPIC_OR_PART:
                return False
            msg = f"Failed to delete topic {topic}: {exc}"
            raise ProvisioningError(msg, topic=topic) from exc
        return True

    async def delete(self, spec: TopicSpec) -> None:
        admin = self._admin(spec)
        deleted = await self._run(self._delete_blocking, admin, spec)
        if deleted:
            logger.info(
                "topic.deleted",
                topic=spec.topic_name,
                bootstrap_servers=self._broker(spec),
            )
        else:
            logger.info("topic.already_deleted", topic=spec.topic_name)
