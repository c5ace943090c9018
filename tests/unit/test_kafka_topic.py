"""Unit tests for KafkaTopic parsing and lifecycle metadata."""

from __future__ import annotations

from typing import Any

import pytest
from pydantic import ValidationError

from kafka_topic_operator.reconcile.errors import UserInputError
from kafka_topic_operator.resources.kafka_topic import (
    API_VERSION,
    FINALIZER,
    ResourceHandle,
    TopicSpec,
    parse_kafka_topic,
)


def _obj(**meta: Any) -> dict[str, Any]:
    metadata = {"name": "orders-topic", "namespace": "default", **meta}
    return {
        "apiVersion": API_VERSION,
        "kind": "KafkaTopic",
        "metadata": metadata,
        "spec": {
            "bootstrapServer": "kafka:9092",
            "topic": "orders",
            "partitions": 3,
            "replicationFactor": 1,
        },
    }


class TestIdentity:
    def test_finalizer_name(self):
        assert FINALIZER == "arnecdn.github.com/finalizer"
        assert API_VERSION == "arnecdn.github.com/v1"


class TestTopicSpec:
    def test_camel_case_aliases(self):
        spec = TopicSpec.model_validate(
            {
                "bootstrapServer": "b:9092",
                "topic": "orders",
                "partitions": 3,
                "replicationFactor": 2,
            }
        )
        assert spec.bootstrap_server == "b:9092"
        assert spec.topic_name == "orders"
        assert spec.replication_factor == 2

    def test_topic_name_alias_accepted(self):
        spec = TopicSpec.model_validate(
            {"topicName": "orders", "partitions": 1, "replicationFactor": 1}
        )
        assert spec.topic_name == "orders"
        assert spec.bootstrap_server is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"partitions": 0},
            {"replicationFactor": 0},
            {"topic": ""},
            {"topic": "bad topic!"},
            {"topic": "x" * 250},
            {"bootstrapServer": ""},
            {"unknownField": True},
        ],
    )
    def test_rejects_invalid_values(self, overrides):
        raw = {"topic": "orders", "partitions": 3, "replicationFactor": 1, **overrides}
        with pytest.raises(ValidationError):
            TopicSpec.model_validate(raw)

    def test_is_frozen(self):
        spec = TopicSpec(topic_name="orders", partitions=1, replication_factor=1)
        with pytest.raises(ValidationError):
            spec.partitions = 5  # type: ignore[misc]


class TestWithDefaultBroker:
    def test_fills_missing_broker(self):
        spec = TopicSpec(topic_name="orders", partitions=1, replication_factor=1)
        resolved = spec.with_default_broker("default:9092")
        assert resolved.bootstrap_server == "default:9092"
        assert spec.bootstrap_server is None

    def test_declared_broker_wins(self):
        spec = TopicSpec(
            bootstrap_server="own:9092",
            topic_name="orders",
            partitions=1,
            replication_factor=1,
        )
        assert spec.with_default_broker("default:9092") is spec


class TestResourceHandle:
    def test_fresh_resource(self):
        handle = ResourceHandle.from_metadata(
            {"name": "t", "namespace": "ns", "resourceVersion": "42"}
        )
        assert handle.key == ("ns", "t")
        assert handle.resource_version == "42"
        assert not handle.deletion_requested
        assert not handle.guard_present

    def test_deletion_and_guard_flags(self):
        handle = ResourceHandle.from_metadata(
            {
                "name": "t",
                "namespace": "ns",
                "deletionTimestamp": "2024-01-01T00:00:00Z",
                "finalizers": ["other.io/cleanup", FINALIZER],
            }
        )
        assert handle.deletion_requested
        assert handle.guard_present
        assert handle.finalizers == ("other.io/cleanup", FINALIZER)

    def test_foreign_finalizer_is_not_our_guard(self):
        handle = ResourceHandle.from_metadata(
            {"name": "t", "namespace": "ns", "finalizers": ["other.io/cleanup"]}
        )
        assert not handle.guard_present

    def test_empty_namespace_is_none(self):
        assert ResourceHandle.from_metadata({"name": "t", "namespace": ""}).namespace is None


class TestParseKafkaTopic:
    def test_valid_object(self):
        handle, spec = parse_kafka_topic(_obj(resourceVersion="7"))
        assert handle.name == "orders-topic"
        assert handle.namespace == "default"
        assert handle.resource_version == "7"
        assert spec.topic_name == "orders"
        assert spec.partitions == 3

    def test_missing_namespace_is_left_to_reconciler(self):
        obj = _obj()
        del obj["metadata"]["namespace"]
        handle, _ = parse_kafka_topic(obj)
        assert handle.namespace is None

    def test_missing_name(self):
        obj = _obj()
        del obj["metadata"]["name"]
        with pytest.raises(UserInputError, match="metadata.name"):
            parse_kafka_topic(obj)

    def test_missing_spec(self):
        obj = _obj()
        del obj["spec"]
        with pytest.raises(UserInputError, match="no spec"):
            parse_kafka_topic(obj)

    def test_invalid_spec_names_resource(self):
        obj = _obj()
        obj["spec"]["partitions"] = -1
        with pytest.raises(UserInputError, match="orders-topic") as excinfo:
            parse_kafka_topic(obj)
        assert isinstance(excinfo.value.__cause__, ValidationError)
