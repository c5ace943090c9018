"""Scheduling directives returned by reconciliation passes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from kafka_topic_operator.config.models import ReconcileConfig


class TopicAction(StrEnum):
    """What a pass has to do for a resource in its current state."""

    CREATE = "create"
    DELETE = "delete"
    NOOP = "noop"


@dataclass(frozen=True)
class Directive:
    """When, if ever, the controller should run the next pass for a key.

    ``requeue_after`` is ``None`` when the resource should only be revisited
    after the next watch event.
    """

    requeue_after: float | None = None

    @classmethod
    def requeue(cls, seconds: float) -> Directive:
        return cls(requeue_after=seconds)

    @classmethod
    def await_change(cls) -> Directive:
        return cls(requeue_after=None)

    @property
    def awaits_change(self) -> bool:
        return self.requeue_after is None


class RequeuePolicy:
    """Maps pass outcomes to directives.

    Fixed intervals only: retries happen by re-running the whole pass, so the
    policy keeps no per-resource state.
    """

    def __init__(self, config: ReconcileConfig | None = None) -> None:
        self._config = config or ReconcileConfig()

    def after_success(self, action: TopicAction) -> Directive:
        if action == TopicAction.DELETE:
            return Directive.await_change()
        return Directive.requeue(self._config.success_requeue_seconds)

    def after_error(self) -> Directive:
        return Directive.requeue(self._config.error_requeue_seconds)
