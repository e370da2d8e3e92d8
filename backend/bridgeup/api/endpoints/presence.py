# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from fastapi import APIRouter, Depends

from bridgeup.api.dependencies import get_realtime
from bridgeup.core import security
from bridgeup.schemas.presence import OnlineUsersResponse, PresenceStatusResponse
from bridgeup.services.realtime import RealtimeServices

router = APIRouter()


@router.get("/online", response_model=OnlineUsersResponse)
async def online_users(
    current_user_id: str = Depends(security.get_current_user_id),
    realtime: RealtimeServices = Depends(get_realtime),
):
    online = sorted(realtime.presence.online_user_ids())
    return OnlineUsersResponse(online_users=online, count=len(online))


@router.get("/{user_id}", response_model=PresenceStatusResponse)
async def user_presence(
    user_id: str,
    current_user_id: str = Depends(security.get_current_user_id),
    realtime: RealtimeServices = Depends(get_realtime),
):
    return PresenceStatusResponse(
        user_id=user_id, is_online=realtime.presence.is_online(user_id)
    )
