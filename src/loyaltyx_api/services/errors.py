"""Domain error taxonomy shared by services and the HTTP layer."""

from __future__ import annotations

from typing import Any, Mapping


class LoyaltyError(Exception):
    """Base class for errors surfaced to API clients.

    ``reason`` is stable and machine-readable; ``message`` is for humans.
    """

    reason = "internal"
    status_code = 500

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = dict(details or {})

    def to_payload(self) -> dict[str, Any]:
        return {
            "error": {
                "reason": self.reason,
                "message": self.message,
                "details": self.details,
            }
        }


class Unauthenticated(LoyaltyError):
    reason = "unauthenticated"
    status_code = 401


class InvalidArgument(LoyaltyError):
    reason = "invalid_argument"
    status_code = 400


class NotFound(LoyaltyError):
    reason = "not_found"
    status_code = 404


class Conflict(LoyaltyError):
    reason = "conflict"
    status_code = 409


class InsufficientBalance(LoyaltyError):
    """Expected business outcome: the customer cannot afford the reward."""

    reason = "insufficient_balance"
    status_code = 400

    def __init__(self, *, required: int, available: int) -> None:
        super().__init__(
            "Insufficient points",
            details={
                "required": required,
                "available": available,
                "shortage": required - available,
            },
        )
        self.required = required
        self.available = available
        self.shortage = required - available


class InternalError(LoyaltyError):
    reason = "internal"
    status_code = 500


__all__ = [
    "Conflict",
    "InsufficientBalance",
    "InternalError",
    "InvalidArgument",
    "LoyaltyError",
    "NotFound",
    "Unauthenticated",
]
