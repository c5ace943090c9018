"""CustomResourceDefinition manifest for the KafkaTopic kind."""

from __future__ import annotations

from typing import Any

import yaml

from kafka_topic_operator.resources.kafka_topic import (
    GROUP,
    KIND,
    PLURAL,
    SINGULAR,
    VERSION,
    TopicSpec,
)

_DROPPED_KEYS = {"title", "additionalProperties"}


def _structural(schema: dict[str, Any]) -> dict[str, Any]:
    """Rewrite a pydantic JSON schema node into a Kubernetes structural schema.

    Kubernetes rejects ``anyOf`` with a ``null`` branch and ``default: null``;
    optional fields become ``nullable: true`` instead.
    """
    node = dict(schema)
    any_of = node.pop("anyOf", None)
    if any_of is not None:
        non_null = [s for s in any_of if s.get("type") != "null"]
        if len(non_null) == 1:
            merged = {**non_null[0], **node}
            if len(non_null) != len(any_of):
                merged["nullable"] = True
            node = merged
        else:
            node["anyOf"] = any_of
    if node.get("default", ...) is None:
        node.pop("default")
    for key in _DROPPED_KEYS:
        node.pop(key, None)
    if "properties" in node:
        node["properties"] = {
            name: _structural(sub) for name, sub in node["properties"].items()
        }
    return node


def spec_schema() -> dict[str, Any]:
    """OpenAPI v3 schema of ``.spec`` derived from :class:`TopicSpec`."""
    return _structural(TopicSpec.model_json_schema(by_alias=True))


def build_crd() -> dict[str, Any]:
    """Return the CustomResourceDefinition manifest as a dict."""
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {"name": f"{PLURAL}.{GROUP}"},
        "spec": {
            "group": GROUP,
            "names": {
                "kind": KIND,
                "plural": PLURAL,
                "singular": SINGULAR,
                "shortNames": ["kt"],
            },
            "scope": "Namespaced",
            "versions": [
                {
                    "name": VERSION,
                    "served": True,
                    "storage": True,
                    "schema": {
                        "openAPIV3Schema": {
                            "type": "object",
                            "required": ["spec"],
                            "properties": {"spec": spec_schema()},
                        }
                    },
                    "additionalPrinterColumns": [
                        {"name": "Topic", "type": "string", "jsonPath": ".spec.topic"},
                        {
                            "name": "Partitions",
                            "type": "integer",
                            "jsonPath": ".spec.partitions",
                        },
                        {
                            "name": "Replication",
                            "type": "integer",
                            "jsonPath": ".spec.replicationFactor",
                        },
                        {
                            "name": "Age",
                            "type": "date",
                            "jsonPath": ".metadata.creationTimestamp",
                        },
                    ],
                }
            ],
        },
    }


def render_crd() -> str:
    """Render the CRD as YAML, ready for ``kubectl apply -f -``."""
    return yaml.safe_dump(build_crd(), sort_keys=False)
