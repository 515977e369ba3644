"""
Health check endpoints.
Liveness plus a readiness check of the local collaborator files.
"""

import os
import time

from fastapi import APIRouter, Depends

from bulkdesk.dependencies import ServiceContainer, get_container

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "bulkdesk"}


@router.get("/readyz")
async def readyz(services: ServiceContainer = Depends(get_container)):
    """
    Readiness check: profiles load, ticket log location writable.
    Also reports in-memory job and verification load.
    """
    checks = {}
    overall_ok = True

    # 1) Profiles file
    t0 = time.time()
    try:
        profiles = services.profile_store.load_all()
        checks["profiles"] = {
            "ok": True,
            "count": len(profiles),
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
    except Exception as e:
        checks["profiles"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = False

    # 2) Ticket log
    log_path = services.ticket_log.path
    target = log_path if log_path.exists() else log_path.parent
    log_ok = os.access(target, os.W_OK)
    checks["ticket_log"] = {"ok": log_ok, "path": str(log_path)}
    if not log_ok:
        checks["ticket_log"]["error"] = "Ticket log is not writable"
        overall_ok = False

    checks["jobs"] = {
        "active": len(services.registry),
        "pending_verifications": services.verification_pool.pending,
    }

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
