from __future__ import annotations


class ReconcileError(Exception):
    """Base class for all reconciler errors."""


# -----------------------------
# Object store
# -----------------------------

class StoreError(ReconcileError):
    """The object store could not serve a request. Transient: retry later."""


class NotFound(StoreError):
    pass


class AlreadyExists(StoreError):
    pass


# -----------------------------
# Translation / resolution
# -----------------------------

class ResolutionFailure(ReconcileError):
    """A peer reference could not be turned into a routable address.

    ``step`` names the sub-step that failed: lookup, rpc, decode, reply or cancelled.
    """

    def __init__(self, ref: str, step: str, detail: str = "") -> None:
        self.ref = ref
        self.step = step
        self.detail = detail
        msg = f"cannot resolve peer '{ref}' ({step})"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class TranslationFailure(ReconcileError):
    """A NodeSpec could not be turned into a workload unit."""

    def __init__(self, node: str, reason: str, cause: Exception | None = None) -> None:
        self.node = node
        self.reason = reason
        self.cause = cause
        super().__init__(f"cannot build workload for node '{node}': {reason}")
