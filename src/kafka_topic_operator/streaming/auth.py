"""Kafka authentication config builder for the admin client."""

from __future__ import annotations

from typing import Any

from kafka_topic_operator.config.models import KafkaAuthMechanism, KafkaConfig

_SASL_MECHANISMS = {
    KafkaAuthMechanism.SASL_PLAIN: "PLAIN",
    KafkaAuthMechanism.SASL_SCRAM_256: "SCRAM-SHA-256",
    KafkaAuthMechanism.SASL_SCRAM_512: "SCRAM-SHA-512",
}


def build_kafka_auth_config(config: KafkaConfig) -> dict[str, Any]:
    """Build confluent_kafka config dict entries for authentication.

    Returns a dict of config keys to merge into the AdminClient constructor
    arguments.  SSL certificate paths are honoured with or without SASL.
    """
    auth: dict[str, Any] = {}
    if config.security_protocol != "PLAINTEXT":
        auth["security.protocol"] = config.security_protocol

    if config.ssl_ca_location:
        auth["ssl.ca.location"] = config.ssl_ca_location
    if config.ssl_certificate_location:
        auth["ssl.certificate.location"] = config.ssl_certificate_location
    if config.ssl_key_location:
        auth["ssl.key.location"] = config.ssl_key_location

    mech = config.auth_mechanism
    if mech == KafkaAuthMechanism.NONE:
        return auth

    auth["security.protocol"] = config.security_protocol
    auth["sasl.mechanism"] = _SASL_MECHANISMS[mech]
    auth["sasl.username"] = config.sasl_username
    pw = config.sasl_password.get_secret_value() if config.sasl_password else ""
    auth["sasl.password"] = pw
    return auth
