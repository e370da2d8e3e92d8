# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from fastapi import APIRouter

from bridgeup.api.endpoints import calls, health, messages, presence

# Global API router, mounted under settings.API_PREFIX
api_router = APIRouter()

# Health check endpoints (no prefix, directly under /api)
api_router.include_router(health.router, tags=["health"])
api_router.include_router(messages.router, prefix="/messages", tags=["messages"])
api_router.include_router(calls.router, prefix="/video-call", tags=["video-call"])
api_router.include_router(presence.router, prefix="/presence", tags=["presence"])
