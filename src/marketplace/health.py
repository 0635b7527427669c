"""Health and readiness endpoints for container orchestration.

Provides two top-level routes:

- ``GET /health``: Liveness probe.  Returns 200 if the process is alive.
- ``GET /ready``: Readiness probe.  Returns 200 only when the marketplace
  database answers a trivial query.  Returns 503 with per-check details
  otherwise.
"""

from __future__ import annotations

import asyncio

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from marketplace.store.database import Database


def register_health_routes(app: FastAPI) -> None:
    """Register ``/health`` and ``/ready`` endpoints on *app*.

    Args:
        app: The FastAPI application instance.
    """

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe; always returns 200 if the process is running."""
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        """Readiness probe; checks the marketplace database."""
        db: Database | None = getattr(request.app.state, "db", None)
        checks: dict[str, str] = {}

        if db is not None:
            try:
                await asyncio.to_thread(db.ping)
                checks["database"] = "ok"
            except Exception:
                checks["database"] = "fail"
        else:
            checks["database"] = "fail"

        all_ok = all(v == "ok" for v in checks.values())
        status = "ready" if all_ok else "not_ready"
        code = 200 if all_ok else 503

        return JSONResponse(content={"status": status, "checks": checks}, status_code=code)
