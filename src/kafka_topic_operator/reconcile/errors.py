"""Error taxonomy for reconciliation passes.

Every failure a pass can surface is a :class:`ReconcileError`.  None of them
is fatal to the operator: the controller hands them to
``TopicReconciler.on_error`` which schedules a short retry.
"""

from __future__ import annotations


class ReconcileError(Exception):
    """Base class for failures surfaced by a reconciliation pass."""

    kind = "reconcile"


class UserInputError(ReconcileError):
    """The KafkaTopic declaration is structurally invalid."""

    kind = "user_input"


class GuardError(ReconcileError):
    """The API server rejected or failed a finalizer patch."""

    kind = "guard"

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status

    @property
    def conflict(self) -> bool:
        return self.status == 409


class ProvisioningError(ReconcileError):
    """Kafka rejected a topic create, delete or metadata request."""

    kind = "provisioning"

    def __init__(self, message: str, *, topic: str) -> None:
        super().__init__(message)
        self.topic = topic
