"""Finalizer-based lifecycle guard on KafkaTopic resources."""

from __future__ import annotations

import asyncio
from typing import Any

import aiohttp
import structlog
from kubernetes_asyncio.client import CustomObjectsApi
from kubernetes_asyncio.client.exceptions import ApiException

from kafka_topic_operator.reconcile.errors import GuardError
from kafka_topic_operator.resources.kafka_topic import (
    FINALIZER,
    GROUP,
    PLURAL,
    VERSION,
    ResourceHandle,
)

logger = structlog.get_logger()

MERGE_PATCH = "application/merge-patch+json"

_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


class FinalizerGuard:
    """Adds or removes our marker in ``metadata.finalizers``.

    Each call reads the current object and sends a JSON merge patch carrying
    the ``resourceVersion`` it read.  The API server rejects the patch with
    409 if anything changed in between; that conflict is raised as a
    :class:`GuardError` instead of being retried here, so a concurrent edit
    is never overwritten.  Finalizers owned by other controllers are kept.
    """

    def __init__(self, api: CustomObjectsApi, marker: str = FINALIZER) -> None:
        self._api = api
        self._marker = marker

    async def attach_guard(self, name: str, namespace: str) -> ResourceHandle:
        handle = await self._read(name, namespace)
        if handle.guard_present:
            logger.debug("finalizer.already_attached", name=name, namespace=namespace)
            return handle
        finalizers = [*handle.finalizers, self._marker]
        updated = await self._patch(handle, namespace, finalizers, "attach")
        logger.info("finalizer.attached", name=name, namespace=namespace)
        return updated

    async def release_guard(self, name: str, namespace: str) -> ResourceHandle:
        handle = await self._read(name, namespace)
        if not handle.guard_present:
            logger.debug("finalizer.already_released", name=name, namespace=namespace)
            return handle
        finalizers = [f for f in handle.finalizers if f != self._marker]
        # Merge patch: null removes the key, a list replaces it wholesale.
        updated = await self._patch(handle, namespace, finalizers or None, "release")
        logger.info("finalizer.released", name=name, namespace=namespace)
        return updated

    async def _read(self, name: str, namespace: str) -> ResourceHandle:
        try:
            obj = await self._api.get_namespaced_custom_object(
                GROUP, VERSION, namespace, PLURAL, name
            )
        except ApiException as exc:
            msg = f"Failed to read KafkaTopic {namespace}/{name}: {exc.status} {exc.reason}"
            raise GuardError(msg, status=exc.status) from exc
        except _TRANSPORT_ERRORS as exc:
            msg = f"Failed to read KafkaTopic {namespace}/{name}: {exc!r}"
            raise GuardError(msg) from exc
        return ResourceHandle.from_metadata(obj.get("metadata") or {}, self._marker)

    async def _patch(
        self,
        handle: ResourceHandle,
        namespace: str,
        finalizers: list[str] | None,
        operation: str,
    ) -> ResourceHandle:
        body: dict[str, Any] = {
            "metadata": {
                "finalizers": finalizers,
                "resourceVersion": handle.resource_version,
            }
        }
        try:
            obj = await self._api.patch_namespaced_custom_object(
                GROUP,
                VERSION,
                namespace,
                PLURAL,
                handle.name,
                body,
                _content_type=MERGE_PATCH,
            )
        except ApiException as exc:
            if exc.status == 409:
                logger.warning(
                    "finalizer.conflict",
                    name=handle.name,
                    namespace=namespace,
                    operation=operation,
                    resource_version=handle.resource_version,
                )
            msg = (
                f"Failed to {operation} finalizer on KafkaTopic "
                f"{namespace}/{handle.name}: {exc.status} {exc.reason}"
            )
            raise GuardError(msg, status=exc.status) from exc
        except _TRANSPORT_ERRORS as exc:
            msg = (
                f"Failed to {operation} finalizer on KafkaTopic "
                f"{namespace}/{handle.name}: {exc!r}"
            )
            raise GuardError(msg) from exc
        return ResourceHandle.from_metadata(obj.get("metadata") or {}, self._marker)
