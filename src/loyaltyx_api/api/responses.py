"""Success envelopes shared by the v1 endpoints."""

from __future__ import annotations

from typing import Any


def success(data: Any = None, message: str | None = None, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message is not None:
        body["message"] = message
    body.update(extra)
    return body


def paginated(items: list[Any], *, total: int, limit: int, offset: int) -> dict[str, Any]:
    return success(
        items,
        pagination={
            "total": total,
            "limit": limit,
            "offset": offset,
            "hasMore": offset + len(items) < total,
        },
    )


__all__ = ["paginated", "success"]
