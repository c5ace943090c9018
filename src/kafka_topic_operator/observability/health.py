"""One-shot health checks for the operator's dependencies."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import structlog
from confluent_kafka.admin import AdminClient
from kubernetes_asyncio import client

from kafka_topic_operator.config.models import KafkaConfig, OperatorConfig
from kafka_topic_operator.kube.client import load_kubernetes_config
from kafka_topic_operator.resources.kafka_topic import GROUP, PLURAL, VERSION
from kafka_topic_operator.streaming.auth import build_kafka_auth_config

logger = structlog.get_logger()


class Status(StrEnum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class ComponentHealth:
    name: str
    status: Status = Status.UNKNOWN
    detail: str = ""


@dataclass
class OperatorHealth:
    components: list[ComponentHealth] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return all(c.status == Status.HEALTHY for c in self.components)

    @property
    def summary(self) -> dict[str, str]:
        return {c.name: c.status.value for c in self.components}


def check_kafka(kafka_config: KafkaConfig, timeout: float = 5.0) -> ComponentHealth:
    """Check connectivity to the default broker."""
    try:
        admin_conf: dict[str, Any] = {
            "bootstrap.servers": kafka_config.bootstrap_servers
        }
        admin_conf.update(build_kafka_auth_config(kafka_config))
        admin = AdminClient(admin_conf)
        meta = admin.list_topics(timeout=timeout)
        return ComponentHealth(
            name="kafka",
            status=Status.HEALTHY,
            detail=f"{len(meta.brokers)} broker(s), {len(meta.topics)} topic(s)",
        )
    except Exception as exc:
        return ComponentHealth(name="kafka", status=Status.UNHEALTHY, detail=str(exc))


async def check_kubernetes() -> ComponentHealth:
    """Check the API server and the presence of the KafkaTopic CRD."""
    try:
        await load_kubernetes_config()
        async with client.ApiClient() as api_client:
            api = client.CustomObjectsApi(api_client)
            result = await api.list_cluster_custom_object(GROUP, VERSION, PLURAL)
        items = result.get("items", [])
        return ComponentHealth(
            name="kubernetes",
            status=Status.HEALTHY,
            detail=f"{len(items)} {PLURAL}",
        )
    except Exception as exc:
        return ComponentHealth(
            name="kubernetes", status=Status.UNHEALTHY, detail=str(exc)
        )


async def check_operator_health(config: OperatorConfig | None = None) -> OperatorHealth:
    """Run all health checks and return the aggregated result."""
    cfg = config or OperatorConfig()
    loop = asyncio.get_running_loop()
    kafka = await loop.run_in_executor(None, check_kafka, cfg.kafka)
    kubernetes = await check_kubernetes()
    return OperatorHealth(components=[kafka, kubernetes])
