# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Decorators for Socket.IO event handlers.

- auto_payload_validation: validate the raw payload into a pydantic model
  and pass the model to the handler, or acknowledge with an error.
- require_joined_user: resolve the user bound to the socket by ``join`` and
  pass it to the handler, or acknowledge with ``Not joined``.

Stack them with validation outermost:

    @auto_payload_validation(TypingPayload)
    @require_joined_user
    async def on_typing(self, sid, data, user_id): ...
"""

import functools
import logging
from typing import Any, Callable, Type

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)


def auto_payload_validation(model: Type[BaseModel]) -> Callable:
    """Validate ``data`` against ``model`` before calling the handler."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(self, sid: str, data: Any = None, *args, **kwargs):
            try:
                payload = model.model_validate(data)
            except ValidationError as e:
                logger.warning(
                    f"[WS] invalid {model.__name__} payload sid={sid}: {e.errors()}"
                )
                return {"error": f"Invalid payload: {e}"}
            return await func(self, sid, payload, *args, **kwargs)

        return wrapper

    return decorator


def require_joined_user(func: Callable) -> Callable:
    """Pass the user bound to ``sid`` as ``user_id``; refuse unbound sockets."""

    @functools.wraps(func)
    async def wrapper(self, sid: str, data: Any = None, *args, **kwargs):
        user_id = self.services.lifecycle.user_of(sid)
        if user_id is None:
            logger.warning(f"[WS] {func.__name__} before join sid={sid}")
            return {"error": "Not joined"}
        return await func(self, sid, data, user_id, *args, **kwargs)

    return wrapper
