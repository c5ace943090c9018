"""KafkaTopic custom resource: declared spec and lifecycle metadata."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from kafka_topic_operator.reconcile.errors import UserInputError

GROUP = "arnecdn.github.com"
VERSION = "v1"
KIND = "KafkaTopic"
PLURAL = "kafkatopics"
SINGULAR = "kafkatopic"
API_VERSION = f"{GROUP}/{VERSION}"
FINALIZER = f"{GROUP}/finalizer"


class TopicSpec(BaseModel):
    """Desired state of one Kafka topic, as declared in ``.spec``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    bootstrap_server: str | None = Field(
        default=None, alias="bootstrapServer", min_length=1
    )
    topic_name: str = Field(
        alias="topic",
        validation_alias=AliasChoices("topic", "topicName"),
        min_length=1,
        max_length=249,
        pattern=r"^[a-zA-Z0-9._-]+$",
    )
    partitions: int = Field(ge=1)
    replication_factor: int = Field(alias="replicationFactor", ge=1)

    def with_default_broker(self, broker: str) -> TopicSpec:
        """Return a copy using *broker* unless the resource declares its own."""
        if self.bootstrap_server:
            return self
        return self.model_copy(update={"bootstrap_server": broker})


@dataclass(frozen=True)
class ResourceHandle:
    """Identity and lifecycle metadata of a KafkaTopic resource."""

    name: str
    namespace: str | None
    deletion_requested: bool = False
    guard_present: bool = False
    resource_version: str | None = None
    finalizers: tuple[str, ...] = ()

    @property
    def key(self) -> tuple[str | None, str]:
        return (self.namespace, self.name)

    @classmethod
    def from_metadata(
        cls, meta: dict[str, Any], marker: str = FINALIZER
    ) -> ResourceHandle:
        finalizers = tuple(meta.get("finalizers") or ())
        return cls(
            name=meta.get("name") or "",
            namespace=meta.get("namespace") or None,
            deletion_requested=meta.get("deletionTimestamp") is not None,
            guard_present=marker in finalizers,
            resource_version=meta.get("resourceVersion"),
            finalizers=finalizers,
        )


def parse_kafka_topic(obj: dict[str, Any]) -> tuple[ResourceHandle, TopicSpec]:
    """Split a raw KafkaTopic object into its handle and validated spec.

    Raises :class:`UserInputError` when the object is not a usable KafkaTopic.
    A missing namespace is *not* rejected here; the reconciler reports it so
    that no side effect is ever attempted for such a resource.
    """
    meta = obj.get("metadata") or {}
    handle = ResourceHandle.from_metadata(meta)
    if not handle.name:
        msg = "KafkaTopic resource has no metadata.name"
        raise UserInputError(msg)
    raw_spec = obj.get("spec")
    if not isinstance(raw_spec, dict):
        msg = f"KafkaTopic {handle.name} has no spec"
        raise UserInputError(msg)
    try:
        spec = TopicSpec.model_validate(raw_spec)
    except ValidationError as exc:
        msg = f"Invalid KafkaTopic {handle.name}:\n{exc}"
        raise UserInputError(msg) from exc
    return handle, spec
