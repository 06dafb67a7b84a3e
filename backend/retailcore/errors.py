# Overview: Typed failures surfaced by the inventory & transaction core.
"""
Error taxonomy (authoritative)

Every core operation either returns its success payload or raises exactly one
of these. A raise inside an atomic unit always rolls the whole unit back, so
callers never observe partial application.

The HTTP layer maps status_code/code onto responses; nothing in the core
depends on that mapping.
"""

from __future__ import annotations


class CoreError(Exception):
    """Base for all typed core failures."""

    code = "core_error"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(CoreError):
    """Malformed or policy-violating input (zero quantity, over-return, bad split payment)."""

    code = "validation_error"
    status_code = 400


class NotFoundError(CoreError):
    """Unknown variant, transaction, transfer or return id."""

    code = "not_found"
    status_code = 404

    def __init__(self, resource: str, resource_id=None):
        message = f"{resource} {resource_id} not found" if resource_id is not None else f"{resource} not found"
        super().__init__(message, {"resource": resource, "id": resource_id})


class InsufficientStockError(CoreError):
    """A debit would drive a stock quantity negative."""

    code = "insufficient_stock"
    status_code = 409

    def __init__(self, *, variant_id: int, branch_id: int, on_hand: int, requested: int):
        super().__init__(
            f"Insufficient stock for variant {variant_id} at branch {branch_id}. "
            f"On-hand: {on_hand}, requested: {requested}",
            {
                "variant_id": variant_id,
                "branch_id": branch_id,
                "on_hand": on_hand,
                "requested": requested,
            },
        )
        self.variant_id = variant_id
        self.branch_id = branch_id
        self.on_hand = on_hand
        self.requested = requested


class ConflictError(CoreError):
    """Same-branch transfer, or a transition out of a terminal state."""

    code = "conflict"
    status_code = 409


class DeadlineExceededError(CoreError):
    """The return window for a transaction has passed."""

    code = "deadline_exceeded"
    status_code = 422


class LockTimeout(RuntimeError):
    """
    A row lock could not be acquired within LOCK_TIMEOUT_MS.

    Transient: the whole unit is aborted and may be re-executed by run_with_retry.
    Not a CoreError because it says nothing about the request itself.
    """
