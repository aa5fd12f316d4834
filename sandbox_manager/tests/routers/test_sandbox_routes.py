# SPDX-FileCopyrightText: 2025 WeCode, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""API tests for the sandbox routes, run against an in-memory driver."""

import pytest
from fastapi.testclient import TestClient

from sandbox_manager.common.config import SESSION_COOKIE_NAME
from sandbox_manager.common.exceptions import DriverError
from sandbox_manager.main import app

TESTCLIENT_HOST = "testclient"


@pytest.fixture
def client(sandbox_manager):
    """TestClient whose routes use the fake-driver SandboxManager."""
    return TestClient(app)


def _create(client):
    response = client.post("/api/sandbox")
    assert response.status_code == 200
    return response


def _assert_cookie_cleared(response):
    set_cookie = response.headers.get("set-cookie", "")
    assert set_cookie.startswith(f"{SESSION_COOKIE_NAME}=")
    assert "Max-Age=0" in set_cookie


class TestCreateSandbox:
    """POST /api/sandbox"""

    def test_create(self, client, fake_driver):
        """Test a new sandbox is created and bound to the cookie."""
        response = _create(client)

        data = response.json()
        assert data["message"] == "Sandbox created successfully"
        assert data["sandboxId"].startswith("sb-")
        assert 3590 < data["expiresIn"] <= 3600
        assert data["sandboxId"] in fake_driver.clusters

        set_cookie = response.headers["set-cookie"]
        assert set_cookie.startswith(f"{SESSION_COOKIE_NAME}=")
        assert "HttpOnly" in set_cookie
        assert "Max-Age=3600" in set_cookie
        assert "samesite=strict" in set_cookie.lower()
        # The cookie carries a signed token, not the raw id
        assert client.cookies.get(SESSION_COOKIE_NAME) != data["sandboxId"]

    def test_reuse_with_cookie(self, client, fake_driver):
        """Test a second create reuses the live sandbox."""
        first = _create(client).json()

        response = _create(client)

        data = response.json()
        assert data["message"] == "Using existing sandbox"
        assert data["sandboxId"] == first["sandboxId"]
        assert "set-cookie" not in response.headers
        assert fake_driver.create_calls == 1

    def test_concurrent_create_denied(self, client, sandbox_manager, fake_driver):
        """Test 429 while the same client has a creation in flight."""
        sandbox_manager._guard.try_acquire(TESTCLIENT_HOST)

        response = client.post("/api/sandbox")

        assert response.status_code == 429
        assert response.json()["code"] == "admission_denied"
        assert fake_driver.create_calls == 0

    def test_create_failure(self, client, fake_driver):
        """Test a driver failure is a 500 carrying the diagnostic."""
        fake_driver.fail_create = DriverError(
            "Failed to create cluster", "Bind for 0.0.0.0:6443 failed"
        )

        response = client.post("/api/sandbox")

        assert response.status_code == 500
        data = response.json()
        assert data["code"] == "driver_error"
        assert "6443" in data["error"]
        assert SESSION_COOKIE_NAME not in client.cookies

    def test_failed_recreate_clears_dead_cookie(self, client, fake_driver):
        """Test a dead sandbox's cookie is dropped even if re-creation fails."""
        _create(client)
        fake_driver.clusters.clear()
        fake_driver.fail_create = DriverError(
            "Failed to create cluster", "Bind for 0.0.0.0:6443 failed"
        )

        response = client.post("/api/sandbox")

        assert response.status_code == 500
        assert response.json()["code"] == "driver_error"
        _assert_cookie_cleared(response)
        assert SESSION_COOKIE_NAME not in client.cookies


class TestGetSandbox:
    """GET /api/sandbox"""

    def test_status(self, client):
        """Test status fields are reported in camelCase."""
        created = _create(client).json()

        response = client.get("/api/sandbox")

        assert response.status_code == 200
        data = response.json()
        assert data["sandboxId"] == created["sandboxId"]
        assert data["expiresAt"] - data["createdAt"] == pytest.approx(3600)
        assert data["expiresIn"] > 0

    def test_without_cookie(self, client):
        """Test 401 when no session is presented."""
        response = client.get("/api/sandbox")

        assert response.status_code == 401
        assert response.json() == {
            "error": "Sandbox not found. Create a new sandbox first.",
            "code": "session_missing",
        }

    def test_dead_sandbox_clears_cookie(self, client, fake_driver):
        """Test 404 and cookie removal when the sandbox is gone."""
        _create(client)
        fake_driver.clusters.clear()

        response = client.get("/api/sandbox")

        assert response.status_code == 404
        assert response.json()["code"] == "sandbox_not_found"
        _assert_cookie_cleared(response)

    def test_tampered_cookie(self, client):
        """Test a forged token is treated as no session."""
        client.cookies.set(SESSION_COOKIE_NAME, "sb-abc1234567")

        response = client.get("/api/sandbox")

        assert response.status_code == 401


class TestExecuteCommand:
    """POST /api/sandbox/exec"""

    def test_execute(self, client, fake_driver):
        """Test a command runs in the session's sandbox."""
        sandbox_id = _create(client).json()["sandboxId"]

        response = client.post("/api/sandbox/exec", json={"command": "get ns"})

        assert response.status_code == 200
        assert response.json() == {
            "message": "Command executed successfully",
            "command": "get ns",
            "output": fake_driver.exec_output,
        }
        assert fake_driver.calls[-1] == ("exec", sandbox_id, ["get", "ns"])

    def test_missing_command(self, client, fake_driver):
        """Test 400 without a command and no driver call."""
        _create(client)
        calls_before = len(fake_driver.calls)

        response = client.post("/api/sandbox/exec", json={})

        assert response.status_code == 400
        assert response.json() == {
            "error": "Command not provided",
            "code": "invalid_command",
        }
        assert len(fake_driver.calls) == calls_before

    def test_retargeting_rejected(self, client, fake_driver):
        """Test commands cannot be pointed at another cluster."""
        _create(client)

        response = client.post(
            "/api/sandbox/exec", json={"command": "get pods --context k3d-other"}
        )

        assert response.status_code == 400
        assert not any(call[0] == "exec" for call in fake_driver.calls)

    def test_command_failure(self, client, fake_driver):
        """Test a failing kubectl command is a 500 with its stderr."""
        _create(client)
        fake_driver.fail_exec = DriverError(
            "Failed to execute command", "error: unknown command \"podz\""
        )

        response = client.post("/api/sandbox/exec", json={"command": "podz"})

        assert response.status_code == 500
        assert "unknown command" in response.json()["error"]

    def test_without_cookie(self, client):
        """Test 401 when no session is presented."""
        response = client.post("/api/sandbox/exec", json={"command": "get ns"})

        assert response.status_code == 401

    def test_unexpected_error(self, sandbox_manager, fake_driver):
        """Test unexpected failures become a generic 500."""
        client = TestClient(app, raise_server_exceptions=False)
        _create(client)
        fake_driver.fail_exec = RuntimeError("boom")

        response = client.post("/api/sandbox/exec", json={"command": "get ns"})

        assert response.status_code == 500
        assert response.json()["code"] == "internal_error"


class TestDeleteSandbox:
    """DELETE /api/sandbox"""

    def test_delete(self, client, fake_driver, sandbox_manager):
        """Test deletion removes the cluster and clears the cookie."""
        sandbox_id = _create(client).json()["sandboxId"]
        token = client.cookies.get(SESSION_COOKIE_NAME)

        response = client.delete("/api/sandbox")

        assert response.status_code == 200
        assert response.json() == {"message": "Sandbox deleted successfully"}
        assert sandbox_id not in fake_driver.clusters
        assert not sandbox_manager.registry.contains(sandbox_id)
        _assert_cookie_cleared(response)

        # The old token no longer refers to anything
        client.cookies.set(SESSION_COOKIE_NAME, token)
        assert client.get("/api/sandbox").status_code == 404

    def test_delete_without_cookie(self, client):
        """Test 401 when no session is presented."""
        assert client.delete("/api/sandbox").status_code == 401


class TestExpiryScenario:
    """A session outliving its sandbox."""

    @pytest.mark.asyncio
    async def test_swept_sandbox(self, client, sandbox_manager, fake_driver):
        """Test the token of a swept sandbox gets 404 and a cleared cookie."""
        created = _create(client).json()
        created_at = sandbox_manager.registry.get(created["sandboxId"])

        deleted = await sandbox_manager._collect_expired_sandboxes(
            now=created_at + 3700
        )

        assert deleted == 1
        response = client.post("/api/sandbox/exec", json={"command": "get pods"})
        assert response.status_code == 404
        _assert_cookie_cleared(response)


class TestHealth:
    """GET /health"""

    def test_health(self, client):
        """Test health reports the tracked sandbox count."""
        assert client.get("/health").json() == {"status": "ok", "sandboxes": 0}

        _create(client)

        assert client.get("/health").json() == {"status": "ok", "sandboxes": 1}


class TestLifespan:
    """Application startup and shutdown."""

    def test_startup_recovers_and_starts_sweeper(
        self, sandbox_manager, fake_driver, mocker
    ):
        """Test startup adopts existing sandboxes and schedules the sweep."""
        mock_scheduler_class = mocker.patch(
            "sandbox_manager.services.sandbox.scheduler.AsyncIOScheduler"
        )
        mock_scheduler_class.return_value.running = False
        fake_driver.clusters.update({"sb-abc1234567", "dev"})

        with TestClient(app) as client:
            assert client.get("/health").json()["sandboxes"] == 1
            mock_scheduler_class.return_value.start.assert_called_once()

        assert sandbox_manager._shutting_down is True

    def test_startup_survives_driver_failure(
        self, sandbox_manager, fake_driver, mocker
    ):
        """Test a failing recovery does not prevent startup."""
        mocker.patch("sandbox_manager.services.sandbox.scheduler.AsyncIOScheduler")
        fake_driver.fail_list = DriverError("Failed to list clusters", "timed out")

        with TestClient(app) as client:
            assert client.get("/health").status_code == 200
