"""Kubernetes API client bootstrap."""

from __future__ import annotations

import structlog
from kubernetes_asyncio import client, config

logger = structlog.get_logger()


async def load_kubernetes_config() -> None:
    """Load in-cluster credentials, falling back to the local kubeconfig."""
    try:
        config.load_incluster_config()
        logger.info("kubernetes.config_loaded", source="in-cluster")
        return
    except config.ConfigException:
        pass
    try:
        await config.load_kube_config()
    except (config.ConfigException, FileNotFoundError) as exc:
        msg = (
            "No Kubernetes credentials found: not running in a cluster and "
            f"no usable kubeconfig ({exc})"
        )
        raise RuntimeError(msg) from exc
    logger.info("kubernetes.config_loaded", source="kubeconfig")


async def create_api_client() -> client.ApiClient:
    """Return an ApiClient for the current credentials.  Caller closes it."""
    await load_kubernetes_config()
    return client.ApiClient()
