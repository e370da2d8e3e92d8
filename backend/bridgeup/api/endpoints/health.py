# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
During graceful shutdown:
- /health returns 200 (app is still alive)
- /ready returns 503 (stop sending new traffic)
"""

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text
from sqlalchemy.orm import Session

from bridgeup.api.dependencies import get_db, get_realtime
from bridgeup.core.shutdown import shutdown_manager
from bridgeup.services.realtime import RealtimeServices

router = APIRouter()


@router.get("/health")
def health_check(
    db: Session = Depends(get_db),
    realtime: RealtimeServices = Depends(get_realtime),
):
    """
    Liveness probe.

    Returns 200 even during graceful shutdown, together with the live
    presence and call counters of this process.
    """
    counters = {
        "onlineUsers": realtime.presence.online_count,
        "activeConnections": realtime.presence.connection_count,
        "activeCalls": realtime.calls.live_call_count,
        "shutting_down": shutdown_manager.is_shutting_down,
    }
    try:
        db.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected", **counters}
    except Exception as e:
        return {"status": "unhealthy", "database": "error", "error": str(e), **counters}


@router.get("/ready")
def readiness_check(response: Response, db: Session = Depends(get_db)):
    """
    Readiness probe.
    Returns 503 during graceful shutdown to stop receiving new traffic.
    """
    if shutdown_manager.is_shutting_down:
        response.status_code = 503
        return {
            "status": "shutting_down",
            "message": "Service is shutting down, not accepting new traffic",
            "shutdown_duration": shutdown_manager.shutdown_duration,
        }

    try:
        db.execute(text("SELECT 1"))
        return {"status": "ready", "database": "connected"}
    except Exception as e:
        response.status_code = 503
        return {
            "status": "not_ready",
            "message": f"Service not ready: {str(e)}",
        }
