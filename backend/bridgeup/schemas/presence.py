# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from typing import List

from pydantic import BaseModel, Field


class OnlineUsersResponse(BaseModel):
    online_users: List[str] = Field(..., alias="onlineUsers")
    count: int

    class Config:
        populate_by_name = True


class PresenceStatusResponse(BaseModel):
    user_id: str = Field(..., alias="userId")
    is_online: bool = Field(..., alias="isOnline")

    class Config:
        populate_by_name = True
