"""Integration tests for API endpoints."""

import asyncio

import pytest
from httpx import AsyncClient

from sitedeploy.core.store import get_deployment_store

STAGING = {
    "deploy_type": "from-branch",
    "branch": "main",
    "environment": "staging",
    "bucket": "site-bucket",
}

PRODUCTION = {
    "deploy_type": "from-branch",
    "branch": "main",
    "environment": "production",
    "bucket": "site-bucket",
    "approvers": ["alice", "bob"],
}


async def _wait_finished(deployment_id: str) -> None:
    run = get_deployment_store().get(deployment_id)
    await asyncio.wait_for(run.task, timeout=2)


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        """Test health check returns healthy status."""
        response = await client.get("/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "environment" in data
        assert data["approval_channel"] == "memory"
        assert data["running_deployments"] == 0

    @pytest.mark.asyncio
    async def test_health_counts_waiting_deployments(self, client: AsyncClient):
        created = (await client.post("/v1/deployments", json=PRODUCTION)).json()
        await asyncio.sleep(0.05)

        data = (await client.get("/v1/health")).json()

        assert data["running_deployments"] == 1
        assert data["awaiting_approval"] == 1

        await client.post(
            f"/v1/deployments/{created['deployment_id']}/approval",
            json={"actor": "alice", "decision": "approve"},
        )
        await _wait_finished(created["deployment_id"])

        data = (await client.get("/v1/health")).json()
        assert data["running_deployments"] == 0
        assert data["awaiting_approval"] == 0


class TestDeploymentEndpoints:
    """Tests for starting and inspecting deployments."""

    @pytest.mark.asyncio
    async def test_create_deployment(self, client: AsyncClient):
        response = await client.post("/v1/deployments", json=STAGING)

        assert response.status_code == 202
        data = response.json()
        assert data["environment"] == "staging"
        assert data["source_selector"] == "main"
        assert data["approval"] == "not_required"

        await _wait_finished(data["deployment_id"])
        detail = await client.get(f"/v1/deployments/{data['deployment_id']}")

        assert detail.status_code == 200
        body = detail.json()
        assert body["status"] == "success"
        assert body["result"]["exit_code"] == 0
        assert body["result"]["publish"]["uploaded"] == 2

    @pytest.mark.asyncio
    async def test_invalid_selector(self, client: AsyncClient):
        response = await client.post(
            "/v1/deployments", json={**STAGING, "commit_tag": "v1.0.0"}
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_missing_approvers_for_protected_environment(self, client: AsyncClient):
        response = await client.post(
            "/v1/deployments", json={**PRODUCTION, "approvers": []}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "CONFIGURATIONERROR"

    @pytest.mark.asyncio
    async def test_get_unknown_deployment(self, client: AsyncClient):
        response = await client.get("/v1/deployments/does-not-exist")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_deployments(self, client: AsyncClient):
        created = (await client.post("/v1/deployments", json=STAGING)).json()
        await _wait_finished(created["deployment_id"])

        response = await client.get("/v1/deployments", params={"environment": "staging"})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["deployments"][0]["deployment_id"] == created["deployment_id"]

        empty = await client.get("/v1/deployments", params={"environment": "production"})
        assert empty.json()["total"] == 0


class TestApprovalEndpoints:
    """Tests for the approval flow."""

    @pytest.mark.asyncio
    async def test_approve(self, client: AsyncClient):
        created = (await client.post("/v1/deployments", json=PRODUCTION)).json()
        deployment_id = created["deployment_id"]
        await asyncio.sleep(0.05)

        state = await client.get(f"/v1/deployments/{deployment_id}/approval")
        assert state.json()["state"] == "pending"
        assert state.json()["approvers"] == ["alice", "bob"]

        response = await client.post(
            f"/v1/deployments/{deployment_id}/approval",
            json={"actor": "alice", "decision": "approve"},
        )
        assert response.status_code == 200
        assert response.json()["decided_by"] == "alice"

        # A repeat approval changes nothing
        repeat = await client.post(
            f"/v1/deployments/{deployment_id}/approval",
            json={"actor": "bob", "decision": "approve"},
        )
        assert repeat.status_code == 200
        assert repeat.json()["decided_by"] == "alice"

        await _wait_finished(deployment_id)
        detail = await client.get(f"/v1/deployments/{deployment_id}")
        assert detail.json()["status"] == "success"

    @pytest.mark.asyncio
    async def test_non_approver_forbidden(self, client: AsyncClient):
        created = (await client.post("/v1/deployments", json=PRODUCTION)).json()
        deployment_id = created["deployment_id"]

        response = await client.post(
            f"/v1/deployments/{deployment_id}/approval",
            json={"actor": "mallory", "decision": "approve"},
        )

        assert response.status_code == 403
        state = await client.get(f"/v1/deployments/{deployment_id}/approval")
        assert state.json()["state"] == "pending"

    @pytest.mark.asyncio
    async def test_reject(self, client: AsyncClient):
        created = (await client.post("/v1/deployments", json=PRODUCTION)).json()
        deployment_id = created["deployment_id"]
        await asyncio.sleep(0.05)

        response = await client.post(
            f"/v1/deployments/{deployment_id}/approval",
            json={"actor": "bob", "decision": "reject"},
        )
        assert response.json()["state"] == "rejected"

        await _wait_finished(deployment_id)
        detail = (await client.get(f"/v1/deployments/{deployment_id}")).json()
        assert detail["status"] == "failure"
        assert detail["result"]["failed_stage"] == "approval"

        late = await client.post(
            f"/v1/deployments/{deployment_id}/approval",
            json={"actor": "alice", "decision": "approve"},
        )
        assert late.status_code == 409

    @pytest.mark.asyncio
    async def test_cancel(self, client: AsyncClient):
        created = (await client.post("/v1/deployments", json=PRODUCTION)).json()
        deployment_id = created["deployment_id"]
        await asyncio.sleep(0.05)

        response = await client.post(f"/v1/deployments/{deployment_id}/cancel")
        assert response.status_code == 202

        await _wait_finished(deployment_id)
        detail = (await client.get(f"/v1/deployments/{deployment_id}")).json()
        assert detail["approval"] == "cancelled"
        assert detail["result"]["exit_code"] == 130

        again = await client.post(f"/v1/deployments/{deployment_id}/cancel")
        assert again.status_code == 409
