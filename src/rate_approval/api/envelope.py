"""Response envelope shared by every API route: ``{success, data?, error?}``."""

from __future__ import annotations

from typing import Any

from rate_approval.domain.models import RateCardPage


def ok(data: Any = None, **extra: Any) -> dict[str, Any]:
    """Wrap *data* in a success envelope, with optional extra top-level keys."""
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


def fail(message: str, **extra: Any) -> dict[str, Any]:
    """Build a failure envelope carrying *message*."""
    return {"success": False, "error": message, **extra}


def pagination(page: RateCardPage) -> dict[str, Any]:
    """Return the pagination block for a listing response."""
    return {
        "totalPages": page.total_pages,
        "totalCount": page.total_count,
        "currentPage": page.page,
        "pageSize": page.page_size,
        "hasNext": page.has_next,
        "hasPrev": page.has_prev,
    }
