"""Reconciliation engine for KafkaTopic resources.

Each pass re-derives the action from the resource's current lifecycle state
(level-triggered) and runs its steps strictly in order:

- CREATE: attach the finalizer, then create the topic.  A topic therefore
  never exists without a finalizer on its resource, even if the operator
  dies between the two steps.
- DELETE: delete the topic, then release the finalizer.  If the delete
  fails the finalizer stays, so the API server keeps the resource around
  and the next pass retries.
- NOOP: nothing to do; poll again later.
"""

from __future__ import annotations

import structlog

from kafka_topic_operator.reconcile.directive import (
    Directive,
    RequeuePolicy,
    TopicAction,
)
from kafka_topic_operator.reconcile.errors import ReconcileError, UserInputError
from kafka_topic_operator.reconcile.ports import LifecycleGuard, TopicProvisioner
from kafka_topic_operator.resources.kafka_topic import ResourceHandle, TopicSpec

logger = structlog.get_logger()


def determine_action(handle: ResourceHandle) -> TopicAction:
    """Pick the action for a resource from its lifecycle flags alone."""
    if handle.deletion_requested:
        return TopicAction.DELETE
    if not handle.guard_present:
        return TopicAction.CREATE
    return TopicAction.NOOP


class TopicReconciler:
    """Drives one KafkaTopic toward its declared state per call.

    Holds only the two ports and the requeue policy, so a single instance can
    serve concurrent passes for different resources.
    """

    def __init__(
        self,
        provisioner: TopicProvisioner,
        guard: LifecycleGuard,
        policy: RequeuePolicy | None = None,
    ) -> None:
        self._provisioner = provisioner
        self._guard = guard
        self._policy = policy or RequeuePolicy()

    async def reconcile(self, handle: ResourceHandle, spec: TopicSpec) -> Directive:
        """Run one pass.  Raises :class:`ReconcileError` on failure."""
        if not handle.namespace:
            msg = (
                f"KafkaTopic {handle.name} has no namespace; "
                "it must be a namespaced resource"
            )
            raise UserInputError(msg)
        namespace = handle.namespace

        action = determine_action(handle)
        log = logger.bind(
            name=handle.name,
            namespace=namespace,
            topic=spec.topic_name,
            action=action.value,
        )

        if action == TopicAction.CREATE:
            await self._guard.attach_guard(handle.name, namespace)
            await self._provisioner.create(spec)
            log.info("reconcile.created")
        elif action == TopicAction.DELETE:
            await self._provisioner.delete(spec)
            await self._guard.release_guard(handle.name, namespace)
            log.info("reconcile.deleted")
        else:
            log.debug("reconcile.noop")

        return self._policy.after_success(action)

    def on_error(self, handle: ResourceHandle, error: Exception) -> Directive:
        """Log a failed pass and schedule a short retry.  Never raises."""
        kind = error.kind if isinstance(error, ReconcileError) else "unexpected"
        logger.error(
            "reconcile.failed",
            name=handle.name,
            namespace=handle.namespace,
            error_kind=kind,
            error=str(error),
        )
        return self._policy.after_error()
