"""Unit tests for the finalizer lifecycle guard."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock

import aiohttp
import pytest
from kubernetes_asyncio.client.exceptions import ApiException

from kafka_topic_operator.kube.guard import MERGE_PATCH, FinalizerGuard
from kafka_topic_operator.reconcile.errors import GuardError
from kafka_topic_operator.resources.kafka_topic import FINALIZER

FOREIGN = "other.io/cleanup"


def _obj(finalizers: list[str] | None = None, rv: str = "100") -> dict[str, Any]:
    meta: dict[str, Any] = {
        "name": "orders-topic",
        "namespace": "default",
        "resourceVersion": rv,
    }
    if finalizers is not None:
        meta["finalizers"] = finalizers
    return {"metadata": meta, "spec": {"topic": "orders"}}


def _api(current: dict[str, Any], patched: dict[str, Any] | None = None) -> AsyncMock:
    api = AsyncMock()
    api.get_namespaced_custom_object.return_value = current
    api.patch_namespaced_custom_object.return_value = patched or current
    return api


def _patch_body(api: AsyncMock) -> dict[str, Any]:
    args, kwargs = api.patch_namespaced_custom_object.call_args
    assert args[:5] == ("arnecdn.github.com", "v1", "default", "kafkatopics", "orders-topic")
    assert kwargs["_content_type"] == MERGE_PATCH
    return args[5]


@pytest.mark.asyncio
class TestAttachGuard:
    async def test_adds_marker_with_resource_version(self):
        api = _api(_obj(), patched=_obj([FINALIZER], rv="101"))

        handle = await FinalizerGuard(api).attach_guard("orders-topic", "default")

        assert _patch_body(api) == {
            "metadata": {"finalizers": [FINALIZER], "resourceVersion": "100"}
        }
        assert handle.guard_present
        assert handle.resource_version == "101"

    async def test_keeps_foreign_finalizers(self):
        api = _api(_obj([FOREIGN]), patched=_obj([FOREIGN, FINALIZER]))

        await FinalizerGuard(api).attach_guard("orders-topic", "default")

        assert _patch_body(api)["metadata"]["finalizers"] == [FOREIGN, FINALIZER]

    async def test_already_attached_is_noop(self):
        api = _api(_obj([FINALIZER]))

        handle = await FinalizerGuard(api).attach_guard("orders-topic", "default")

        assert handle.guard_present
        api.patch_namespaced_custom_object.assert_not_awaited()

    async def test_conflict_raises_guard_error(self):
        api = _api(_obj())
        api.patch_namespaced_custom_object.side_effect = ApiException(
            status=409, reason="Conflict"
        )

        with pytest.raises(GuardError) as excinfo:
            await FinalizerGuard(api).attach_guard("orders-topic", "default")

        assert excinfo.value.conflict
        assert excinfo.value.status == 409

    async def test_read_not_found_raises_guard_error(self):
        api = _api(_obj())
        api.get_namespaced_custom_object.side_effect = ApiException(
            status=404, reason="Not Found"
        )

        with pytest.raises(GuardError, match="404") as excinfo:
            await FinalizerGuard(api).attach_guard("orders-topic", "default")

        assert not excinfo.value.conflict
        api.patch_namespaced_custom_object.assert_not_awaited()

    @pytest.mark.parametrize(
        "error", [aiohttp.ClientConnectionError("refused"), asyncio.TimeoutError()]
    )
    async def test_transport_error_raises_guard_error(self, error):
        api = _api(_obj())
        api.patch_namespaced_custom_object.side_effect = error

        with pytest.raises(GuardError) as excinfo:
            await FinalizerGuard(api).attach_guard("orders-topic", "default")

        assert excinfo.value.status is None


@pytest.mark.asyncio
class TestReleaseGuard:
    async def test_removes_last_marker_with_null(self):
        api = _api(_obj([FINALIZER]), patched=_obj())

        handle = await FinalizerGuard(api).release_guard("orders-topic", "default")

        assert _patch_body(api) == {
            "metadata": {"finalizers": None, "resourceVersion": "100"}
        }
        assert not handle.guard_present

    async def test_keeps_foreign_finalizers(self):
        api = _api(_obj([FOREIGN, FINALIZER]), patched=_obj([FOREIGN]))

        handle = await FinalizerGuard(api).release_guard("orders-topic", "default")

        assert _patch_body(api)["metadata"]["finalizers"] == [FOREIGN]
        assert handle.finalizers == (FOREIGN,)

    async def test_absent_marker_is_noop(self):
        api = _api(_obj([FOREIGN]))

        handle = await FinalizerGuard(api).release_guard("orders-topic", "default")

        assert not handle.guard_present
        api.patch_namespaced_custom_object.assert_not_awaited()

    async def test_conflict_raises_guard_error(self):
        api = _api(_obj([FINALIZER]))
        api.patch_namespaced_custom_object.side_effect = ApiException(
            status=409, reason="Conflict"
        )

        with pytest.raises(GuardError, match="release") as excinfo:
            await FinalizerGuard(api).release_guard("orders-topic", "default")

        assert excinfo.value.conflict

    async def test_custom_marker(self):
        api = _api(_obj(["example.com/mine"]), patched=_obj())

        await FinalizerGuard(api, marker="example.com/mine").release_guard(
            "orders-topic", "default"
        )

        assert _patch_body(api)["metadata"]["finalizers"] is None
