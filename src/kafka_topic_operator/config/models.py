"""Pydantic configuration models for the KafkaTopic operator."""

from __future__ import annotations

from enum import StrEnum
from typing import Self

from pydantic import BaseModel, Field, SecretStr, model_validator


class KafkaAuthMechanism(StrEnum):
    """Kafka SASL authentication mechanisms."""

    NONE = "none"
    SASL_PLAIN = "sasl_plain"
    SASL_SCRAM_256 = "sasl_scram_256"
    SASL_SCRAM_512 = "sasl_scram_512"


class KafkaConfig(BaseModel):
    """Default broker and admin-client settings.

    ``bootstrap_servers`` is only used for resources that do not declare their
    own ``bootstrapServer``.
    """

    bootstrap_servers: str = Field(default="localhost:9092", min_length=1)
    metadata_timeout_seconds: float = Field(default=10.0, gt=0)
    delete_operation_timeout_seconds: float = Field(default=30.0, gt=0)
    # Auth / security
    security_protocol: str = "PLAINTEXT"
    auth_mechanism: KafkaAuthMechanism = KafkaAuthMechanism.NONE
    sasl_username: str | None = None
    sasl_password: SecretStr | None = None
    ssl_ca_location: str | None = None
    ssl_certificate_location: str | None = None
    ssl_key_location: str | None = None

    @model_validator(mode="after")
    def check_auth_requirements(self) -> Self:
        """Validate that auth-specific fields are present."""
        mech = self.auth_mechanism
        if mech != KafkaAuthMechanism.NONE and (
            not self.sasl_username or not self.sasl_password
        ):
            msg = (
                "sasl_username and sasl_password are required "
                f"when auth_mechanism is '{mech.value}'"
            )
            raise ValueError(msg)
        return self


class ReconcileConfig(BaseModel):
    """Requeue intervals handed back to the controller after each pass."""

    success_requeue_seconds: float = Field(default=10.0, gt=0)
    error_requeue_seconds: float = Field(default=5.0, gt=0)


class WatchConfig(BaseModel):
    """List/watch settings for KafkaTopic resources."""

    # None watches every namespace.
    namespace: str | None = None
    timeout_seconds: int = Field(default=300, ge=1)
    backoff_max_seconds: float = Field(default=30.0, gt=0)


class HealthConfig(BaseModel):
    enabled: bool = True
    port: int = Field(default=8080, ge=1, le=65535)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = True


class OperatorConfig(BaseModel, extra="forbid"):
    """Top-level operator configuration."""

    kafka: KafkaConfig = KafkaConfig()
    reconcile: ReconcileConfig = ReconcileConfig()
    watch: WatchConfig = WatchConfig()
    health: HealthConfig = HealthConfig()
    logging: LoggingConfig = LoggingConfig()

    @model_validator(mode="after")
    def check_requeue_ordering(self) -> Self:
        """Failure retries must come back sooner than the steady-state poll."""
        if (
            self.reconcile.error_requeue_seconds
            > self.reconcile.success_requeue_seconds
        ):
            msg = (
                "reconcile.error_requeue_seconds must not exceed "
                "reconcile.success_requeue_seconds"
            )
            raise ValueError(msg)
        return self
