"""Liveness and readiness probes.

``/health`` answers as long as the process serves HTTP.  ``/ready`` runs every
readiness check against the shared repository and answers 503 listing the
failing ones, so an orchestrator only routes traffic once the rate-card
database is reachable and migrated.
"""

from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import Callable
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

REQUIRED_TABLES = frozenset({"rate_cards", "approval_tokens", "audit_log"})


def _check_database(repository: Any) -> None:
    with repository.reading() as conn:
        conn.execute("SELECT 1").fetchone()


def _check_schema(repository: Any) -> None:
    with repository.reading() as conn:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    missing = REQUIRED_TABLES - {row[0] for row in rows}
    if missing:
        raise sqlite3.OperationalError(f"missing tables: {', '.join(sorted(missing))}")


READINESS_CHECKS: dict[str, Callable[[Any], None]] = {
    "database": _check_database,
    "schema": _check_schema,
}


async def run_readiness_checks(services: dict[str, Any]) -> dict[str, str]:
    """Run each readiness check in a worker thread; ``ok`` or ``fail`` per check."""
    repository = services.get("repository")
    results: dict[str, str] = {}
    for name, check in READINESS_CHECKS.items():
        if repository is None:
            results[name] = "fail"
            continue
        try:
            await asyncio.to_thread(check, repository)
        except sqlite3.Error:
            results[name] = "fail"
        else:
            results[name] = "ok"
    return results


def register_health_routes(app: FastAPI) -> None:
    """Add ``/health`` and ``/ready`` to *app*."""

    @app.get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/ready", include_in_schema=False)
    async def ready(request: Request) -> JSONResponse:
        checks = await run_readiness_checks(request.app.state.services)
        is_ready = all(result == "ok" for result in checks.values())
        return JSONResponse(
            content={"status": "ready" if is_ready else "not_ready", "checks": checks},
            status_code=200 if is_ready else 503,
        )
