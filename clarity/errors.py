"""
Error taxonomy for workspace operations.

Every failure a caller can act on is a ClarityError subclass. The CLI
boundary prints the message as a one-liner on stderr and exits non-zero;
library code raises and lets the boundary decide.
"""

from __future__ import annotations


class ClarityError(Exception):
    """Base class for all expected workspace failures."""

    kind = "error"


class NotFoundError(ClarityError):
    """An id does not resolve (actor, item, project, outline, dep, attachment, status)."""

    kind = "not_found"

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class PermissionDeniedError(ClarityError):
    """The acting actor may not edit the target item."""

    kind = "permission_denied"

    def __init__(self, actor_id: str, owner_id: str, item_id: str) -> None:
        self.actor_id = actor_id
        self.owner_id = owner_id
        self.item_id = item_id
        super().__init__(
            f"permission denied: actor {actor_id} is not owner {owner_id} for item {item_id}"
        )


class InvalidArgumentError(ClarityError):
    kind = "invalid_argument"


class ConflictError(ClarityError):
    kind = "conflict"


class TakeAssignedRequiredError(ConflictError):
    def __init__(self) -> None:
        super().__init__("item is already assigned; pass --take-assigned to take it anyway")


class GateError(ClarityError):
    kind = "gate"


class CompletionBlockedError(GateError):
    """Transition into an end-state refused by children or blockers."""

    def __init__(self, item_id: str, reason: str) -> None:
        self.item_id = item_id
        self.reason = reason
        if reason:
            super().__init__(f"cannot complete item {item_id}: {reason}")
        else:
            super().__init__(f"cannot complete item {item_id}")


class ClarityIOError(ClarityError):
    kind = "io"


class SyncError(ClarityError):
    kind = "sync"


class WriteBlockedError(SyncError):
    def __init__(self) -> None:
        super().__init__(
            "workspace write blocked: git merge/rebase in progress (try: clarity sync resolve)"
        )


class DoctorFailedError(ClarityError):
    kind = "doctor"
