# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Tests for presence and health endpoints.
"""

from unittest.mock import patch

from fastapi import status


class TestPresenceEndpoints:
    def test_online_users(self, test_client, auth_headers, bind_user):
        bind_user("bob", "sid-bob")
        bind_user("alice", "sid-alice")

        response = test_client.get("/api/presence/online", headers=auth_headers("alice"))

        assert response.json() == {"onlineUsers": ["alice", "bob"], "count": 2}

    def test_user_presence(self, test_client, auth_headers, bind_user):
        bind_user("bob", "sid-bob")

        online = test_client.get("/api/presence/bob", headers=auth_headers("alice"))
        offline = test_client.get("/api/presence/carol", headers=auth_headers("alice"))

        assert online.json() == {"userId": "bob", "isOnline": True}
        assert offline.json()["isOnline"] is False

    def test_requires_auth(self, test_client):
        response = test_client.get("/api/presence/online")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


class TestHealthEndpoints:
    def test_health_reports_counters(self, test_client, bind_user):
        bind_user("alice", "sid-1")
        bind_user("alice", "sid-2")

        response = test_client.get("/api/health")

        data = response.json()
        assert data["status"] == "healthy"
        assert data["onlineUsers"] == 1
        assert data["activeConnections"] == 2
        assert data["activeCalls"] == 0
        assert data["shutting_down"] is False

    def test_ready(self, test_client):
        response = test_client.get("/api/ready")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "ready"

    def test_ready_during_shutdown(self, test_client):
        with patch("bridgeup.api.endpoints.health.shutdown_manager") as mock_shutdown:
            mock_shutdown.is_shutting_down = True
            mock_shutdown.shutdown_duration = 1.5

            ready = test_client.get("/api/ready")
            health = test_client.get("/api/health")

        assert ready.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert ready.json()["status"] == "shutting_down"
        assert health.status_code == status.HTTP_200_OK

    def test_root(self, test_client):
        response = test_client.get("/")

        assert response.json()["socketio_path"] == "/socket.io"
