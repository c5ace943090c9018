"""Ports used by the reconciler: topic backend and finalizer store."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from kafka_topic_operator.resources.kafka_topic import ResourceHandle, TopicSpec


@runtime_checkable
class TopicProvisioner(Protocol):
    """Creates, deletes and looks up topics in the message bus.

    ``create`` must treat an existing topic and ``delete`` a missing one as
    success.  Failures raise ``ProvisioningError``.
    """

    async def create(self, spec: TopicSpec) -> None:
        """Ensure the topic described by *spec* exists."""
        ...

    async def delete(self, spec: TopicSpec) -> None:
        """Ensure the topic described by *spec* is gone."""
        ...

    async def exists(self, spec: TopicSpec) -> bool:
        """Return whether the topic is currently present."""
        ...


@runtime_checkable
class LifecycleGuard(Protocol):
    """Attaches and releases the finalizer marker on a KafkaTopic resource.

    Both operations are idempotent.  Failures, including optimistic
    concurrency conflicts, raise ``GuardError``.
    """

    async def attach_guard(self, name: str, namespace: str) -> ResourceHandle: ...

    async def release_guard(self, name: str, namespace: str) -> ResourceHandle: ...
