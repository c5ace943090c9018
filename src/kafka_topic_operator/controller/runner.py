"""Controller runtime: watch KafkaTopics, queue keys, run passes, requeue.

One worker task and one size-1 queue exist per resource key.  Enqueueing a
key whose queue is already full is a no-op, so at most one pass per resource
runs at a time and each pass reads the freshest cached object.  Different
resources reconcile concurrently.
"""

from __future__ import annotations

import asyncio
import signal
from contextlib import suppress
from typing import Any

import structlog
from kubernetes_asyncio import watch
from kubernetes_asyncio.client import ApiClient, CustomObjectsApi
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    wait_exponential,
)

from kafka_topic_operator.config.models import OperatorConfig, WatchConfig
from kafka_topic_operator.kube.client import create_api_client
from kafka_topic_operator.kube.guard import FinalizerGuard
from kafka_topic_operator.observability.http_health import HealthServer
from kafka_topic_operator.reconcile.directive import Directive, RequeuePolicy
from kafka_topic_operator.reconcile.engine import TopicReconciler
from kafka_topic_operator.reconcile.errors import ReconcileError, UserInputError
from kafka_topic_operator.resources.kafka_topic import (
    GROUP,
    PLURAL,
    VERSION,
    ResourceHandle,
    parse_kafka_topic,
)
from kafka_topic_operator.streaming.topics import KafkaTopicProvisioner

logger = structlog.get_logger()

Key = tuple[str | None, str]


class WatchError(Exception):
    """The watch stream returned an ERROR event (e.g. 410 Gone)."""


def object_key(obj: dict[str, Any]) -> Key:
    meta = obj.get("metadata") or {}
    return (meta.get("namespace") or None, meta.get("name") or "")


class Controller:
    """Feeds KafkaTopic objects from a list+watch into the reconciler."""

    def __init__(
        self,
        api: CustomObjectsApi,
        reconciler: TopicReconciler,
        *,
        default_broker: str,
        watch_config: WatchConfig | None = None,
    ) -> None:
        self._api = api
        self._reconciler = reconciler
        self._default_broker = default_broker
        self._watch_config = watch_config or WatchConfig()
        self._cache: dict[Key, dict[str, Any]] = {}
        self._queues: dict[Key, asyncio.Queue[None]] = {}
        self._workers: dict[Key, asyncio.Task[None]] = {}
        self._timers: dict[Key, asyncio.TimerHandle] = {}
        self._watching = False
        self._last_error: str | None = None

    # -- Passes ----------------------------------------------------------------

    async def reconcile_object(self, obj: dict[str, Any]) -> Directive:
        """Run one pass for *obj*.  Failures are turned into retry directives."""
        try:
            handle, spec = parse_kafka_topic(obj)
        except UserInputError as exc:
            handle = ResourceHandle.from_metadata(obj.get("metadata") or {})
            return self._reconciler.on_error(handle, exc)

        spec = spec.with_default_broker(self._default_broker)
        try:
            return await self._reconciler.reconcile(handle, spec)
        except ReconcileError as exc:
            return self._reconciler.on_error(handle, exc)
        except Exception as exc:
            logger.exception(
                "reconcile.unexpected_error",
                name=handle.name,
                namespace=handle.namespace,
            )
            return self._reconciler.on_error(handle, exc)

    def enqueue(self, key: Key) -> None:
        """Request a pass for *key*; coalesces with an already pending request."""
        queue = self._queues.get(key)
        if queue is None:
            queue = asyncio.Queue(maxsize=1)
            self._queues[key] = queue
            self._workers[key] = asyncio.create_task(self._key_loop(key, queue))
        with suppress(asyncio.QueueFull):
            queue.put_nowait(None)

    async def _key_loop(self, key: Key, queue: asyncio.Queue[None]) -> None:
        """Per-key worker: passes for one resource never overlap."""
        try:
            while True:
                await queue.get()
                obj = self._cache.get(key)
                if obj is None:
                    return
                directive = await self.reconcile_object(obj)
                self._schedule(key, directive)
        finally:
            if self._queues.get(key) is queue:
                del self._queues[key]
                self._workers.pop(key, None)

    def _schedule(self, key: Key, directive: Directive) -> None:
        self._cancel_timer(key)
        if directive.awaits_change or key not in self._cache:
            return
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(
            directive.requeue_after, self.enqueue, key  # type: ignore[arg-type]
        )

    def _cancel_timer(self, key: Key) -> None:
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

    # -- Watch events ----------------------------------------------------------

    def handle_event(self, event_type: str, obj: dict[str, Any]) -> None:
        key = object_key(obj)
        if event_type == "DELETED":
            self._forget(key)
            return
        self._cache[key] = obj
        self.enqueue(key)

    def _forget(self, key: Key) -> None:
        self._cache.pop(key, None)
        self._cancel_timer(key)
        if key in self._queues:
            # Wake the worker so it notices the object is gone and exits.
            self.enqueue(key)
        logger.debug("controller.forgot", namespace=key[0], name=key[1])

    async def _list(self) -> dict[str, Any]:
        ns = self._watch_config.namespace
        if ns:
            return await self._api.list_namespaced_custom_object(  # type: ignore[no-any-return]
                GROUP, VERSION, ns, PLURAL
            )
        return await self._api.list_cluster_custom_object(GROUP, VERSION, PLURAL)  # type: ignore[no-any-return]

    def _stream_args(self) -> tuple[Any, tuple[Any, ...]]:
        ns = self._watch_config.namespace
        if ns:
            return self._api.list_namespaced_custom_object, (GROUP, VERSION, ns, PLURAL)
        return self._api.list_cluster_custom_object, (GROUP, VERSION, PLURAL)

    async def watch_once(self) -> None:
        """List, resync the cache, then watch from the list's resourceVersion.

        Returns when the server closes the stream after ``timeout_seconds``.
        """
        listing = await self._list()
        resource_version = (listing.get("metadata") or {}).get("resourceVersion")
        seen: set[Key] = set()
        for obj in listing.get("items", []):
            key = object_key(obj)
            seen.add(key)
            self._cache[key] = obj
            self.enqueue(key)
        for stale in set(self._cache) - seen:
            self._forget(stale)

        self._watching = True
        self._last_error = None
        logger.info(
            "watch.started",
            resources=len(self._cache),
            resource_version=resource_version,
        )

        func, args = self._stream_args()
        watcher = watch.Watch()
        try:
            async for event in watcher.stream(
                func,
                *args,
                resource_version=resource_version,
                timeout_seconds=self._watch_config.timeout_seconds,
            ):
                event_type = str(event.get("type", ""))
                obj = event.get("object")
                if event_type == "ERROR" or not isinstance(obj, dict):
                    raise WatchError(f"watch returned {event_type}: {obj!r}")
                self.handle_event(event_type, obj)
        finally:
            watcher.stop()

    def _before_retry(self, retry_state: RetryCallState) -> None:
        self._watching = False
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        self._last_error = str(exc)
        sleep = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "watch.failed",
            error=self._last_error,
            attempt=retry_state.attempt_number,
            retry_in=round(sleep, 2),
        )

    async def run(self) -> None:
        """Watch forever; failed sessions are retried with exponential backoff."""
        while True:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(Exception),
                wait=wait_exponential(
                    multiplier=1, max=self._watch_config.backoff_max_seconds
                ),
                before_sleep=self._before_retry,
                reraise=True,
            ):
                with attempt:
                    await self.watch_once()

    async def stop(self) -> None:
        """Cancel timers and workers."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        workers = list(self._workers.values())
        for worker in workers:
            worker.cancel()
        for worker in workers:
            with suppress(asyncio.CancelledError):
                await worker
        self._workers.clear()
        self._queues.clear()
        self._watching = False

    def health(self) -> dict[str, Any]:
        return {
            "status": "running" if self._watching else "error",
            "resources": len(self._cache),
            "active_workers": len(self._workers),
            "last_error": self._last_error,
        }


class Operator:
    """Wires config, Kubernetes client, adapters, reconciler and controller."""

    def __init__(self, config: OperatorConfig) -> None:
        self._config = config
        self._api_client: ApiClient | None = None
        self._controller: Controller | None = None
        self._health_server: HealthServer | None = None
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        """Run the operator until SIGINT/SIGTERM (blocking)."""
        asyncio.run(self.run())

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        self._task = asyncio.current_task()
        for signum in (signal.SIGINT, signal.SIGTERM):
            with suppress(NotImplementedError):
                loop.add_signal_handler(signum, self.stop, signum)
        try:
            await self._start()
            assert self._controller is not None
            await self._controller.run()
        except asyncio.CancelledError:
            logger.info("operator.cancelled")
        finally:
            await self._shutdown()

    async def _start(self) -> None:
        cfg = self._config
        self._api_client = await create_api_client()
        api = CustomObjectsApi(self._api_client)

        reconciler = TopicReconciler(
            provisioner=KafkaTopicProvisioner(cfg.kafka),
            guard=FinalizerGuard(api),
            policy=RequeuePolicy(cfg.reconcile),
        )
        self._controller = Controller(
            api,
            reconciler,
            default_broker=cfg.kafka.bootstrap_servers,
            watch_config=cfg.watch,
        )

        if cfg.health.enabled:
            self._health_server = HealthServer(
                port=cfg.health.port, readiness_check=self.health
            )
            await self._health_server.start()

        logger.info(
            "operator.started",
            default_broker=cfg.kafka.bootstrap_servers,
            namespace=cfg.watch.namespace or "*",
        )

    def stop(self, signum: int | None = None) -> None:
        """Ask the running operator to shut down."""
        logger.info("operator.shutdown_signal", signal=signum)
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _shutdown(self) -> None:
        if self._health_server is not None:
            await self._health_server.stop()
        if self._controller is not None:
            await self._controller.stop()
        if self._api_client is not None:
            await self._api_client.close()
        logger.info("operator.stopped")

    async def health(self) -> dict[str, Any]:
        controller = (
            self._controller.health()
            if self._controller is not None
            else {"status": "error", "last_error": "not started"}
        )
        return {"controller": controller}
