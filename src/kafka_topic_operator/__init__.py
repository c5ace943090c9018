"""Kubernetes operator that reconciles KafkaTopic resources into Kafka topics."""

__version__ = "0.1.0"
