# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

import pytest
from fastapi import HTTPException
from jose import jwt

from bridgeup.core.config import settings
from bridgeup.core.security import (
    create_access_token,
    decode_user_id,
    get_current_user_id,
    verify_token,
)


class TestTokens:
    def test_round_trip_subject(self):
        token = create_access_token({"sub": "user-42"})

        assert decode_user_id(token) == "user-42"
        assert verify_token(token) == {"user_id": "user-42"}

    def test_invalid_token_is_rejected(self):
        assert decode_user_id("not-a-jwt") is None

        with pytest.raises(HTTPException) as exc_info:
            verify_token("not-a-jwt")
        assert exc_info.value.status_code == 401

    def test_token_without_subject_is_rejected(self):
        token = jwt.encode(
            {"name": "nobody"}, settings.SECRET_KEY, algorithm=settings.ALGORITHM
        )
        assert decode_user_id(token) is None

    def test_expired_token_is_rejected(self):
        token = create_access_token({"sub": "user-1"}, expires_delta=-1)
        assert decode_user_id(token) is None

    def test_get_current_user_id(self):
        token = create_access_token({"sub": "user-7"})
        assert get_current_user_id(token) == "user-7"
