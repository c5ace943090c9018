"""Unit tests for the generated CustomResourceDefinition."""

from __future__ import annotations

import yaml

from kafka_topic_operator.resources.crd import build_crd, render_crd, spec_schema


class TestBuildCrd:
    def test_identity(self):
        crd = build_crd()
        assert crd["metadata"]["name"] == "kafkatopics.arnecdn.github.com"
        spec = crd["spec"]
        assert spec["group"] == "arnecdn.github.com"
        assert spec["scope"] == "Namespaced"
        assert spec["names"]["kind"] == "KafkaTopic"
        assert spec["names"]["plural"] == "kafkatopics"
        assert spec["names"]["shortNames"] == ["kt"]

    def test_single_served_storage_version(self):
        versions = build_crd()["spec"]["versions"]
        assert len(versions) == 1
        assert versions[0]["name"] == "v1"
        assert versions[0]["served"] and versions[0]["storage"]

    def test_printer_columns_follow_camel_case_fields(self):
        version = build_crd()["spec"]["versions"][0]
        paths = [c["jsonPath"] for c in version["additionalPrinterColumns"]]
        assert ".spec.topic" in paths
        assert ".spec.replicationFactor" in paths


class TestSpecSchema:
    def test_uses_wire_field_names(self):
        schema = spec_schema()
        assert set(schema["properties"]) == {
            "bootstrapServer",
            "topic",
            "partitions",
            "replicationFactor",
        }
        assert set(schema["required"]) == {"topic", "partitions", "replicationFactor"}

    def test_is_structural(self):
        schema = spec_schema()
        assert "title" not in schema
        assert "additionalProperties" not in schema
        broker = schema["properties"]["bootstrapServer"]
        assert broker["type"] == "string"
        assert broker["nullable"] is True
        assert "anyOf" not in broker
        assert "default" not in broker

    def test_keeps_bounds(self):
        props = spec_schema()["properties"]
        assert props["partitions"]["minimum"] == 1
        assert props["replicationFactor"]["minimum"] == 1
        assert props["topic"]["maxLength"] == 249


def test_render_crd_is_yaml_of_build_crd():
    assert yaml.safe_load(render_crd()) == build_crd()
