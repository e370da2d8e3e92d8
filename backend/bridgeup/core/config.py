# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Project configuration
    PROJECT_NAME: str = "BridgeUp Realtime Backend"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"
    # API docs toggle (from env ENABLE_API_DOCS, default True)
    ENABLE_API_DOCS: bool = True

    # Environment configuration
    ENVIRONMENT: str = "development"  # development or production

    # Database configuration
    DATABASE_URL: str = "sqlite:///./bridgeup.db"
    # Create missing tables on startup
    DB_AUTO_CREATE: bool = True

    # JWT configuration
    SECRET_KEY: str = "secret-key"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 7 * 24 * 60  # 7 days in minutes

    # Comma-separated list of allowed origins for HTTP and Socket.IO
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    # Socket.IO configuration
    SOCKETIO_PATH: str = "/socket.io"
    SOCKETIO_NAMESPACE: str = "/"
    SOCKETIO_PING_INTERVAL: int = 25  # seconds
    SOCKETIO_PING_TIMEOUT: int = 20  # seconds
    SOCKETIO_MAX_HTTP_BUFFER_SIZE: int = 1000000  # 1MB
    # Cross-worker room emission through Redis. Presence and calls stay per-process.
    SOCKETIO_REDIS_ENABLED: bool = False
    # Require a JWT in the connect handshake and match it against join(userId)
    SOCKETIO_REQUIRE_AUTH: bool = False

    # Redis configuration
    REDIS_URL: str = "redis://127.0.0.1:6379/0"

    # Call signaling configuration
    CALL_RING_TIMEOUT_SECONDS: float = 60.0  # 0 disables the ring timeout
    CALL_HISTORY_ENABLED: bool = True
    CALL_HISTORY_DEFAULT_LIMIT: int = 50

    # Typing indicator configuration
    # Receivers infer stop-typing after this many seconds without a repeat signal
    TYPING_INDICATOR_TTL_SECONDS: int = 3
    # Repeated isTyping=true signals inside this window are dropped
    TYPING_THROTTLE_SECONDS: float = 1.0

    # Message limits
    MESSAGE_MAX_LENGTH: int = 5000

    # Maximum time to wait for calls to be torn down on shutdown (seconds)
    GRACEFUL_SHUTDOWN_TIMEOUT: int = 10

    @property
    def cors_origin_list(self) -> List[str]:
        return [
            origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()
        ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global configuration instance
settings = Settings()
