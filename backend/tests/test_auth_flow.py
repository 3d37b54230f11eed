from uuid import uuid4

import pytest
from httpx import AsyncClient

from vendorflow.core.security import create_access_token


@pytest.mark.asyncio
async def test_register_invite_join_login_me_flow(client: AsyncClient) -> None:
    register_payload = {
        "email": "planner@example.com",
        "password": "testpass123",
        "full_name": "Paula Planner",
        "wedding_name": "Ana & Luis",
    }
    register_res = await client.post("/auth/register", json=register_payload)
    assert register_res.status_code == 201
    register_data = register_res.json()
    planner_token = register_data["token"]["access_token"]
    assert register_data["user"]["role"] == "planner"
    assert register_data["user"]["wedding_name"] == "Ana & Luis"

    invite_res = await client.post(
        "/auth/invite",
        headers={"Authorization": f"Bearer {planner_token}"},
    )
    assert invite_res.status_code == 200
    invite_code = invite_res.json()["invite_code"]

    join_payload = {
        "email": "ana@example.com",
        "password": "testpass123",
        "full_name": "Ana Garcia",
        "invite_code": invite_code.lower(),
    }
    join_res = await client.post("/auth/join", json=join_payload)
    assert join_res.status_code == 201
    join_data = join_res.json()
    couple_token = join_data["token"]["access_token"]
    assert join_data["user"]["wedding_id"] == register_data["user"]["wedding_id"]

    login_payload = {"email": "ana@example.com", "password": "testpass123"}
    login_res = await client.post("/auth/login", json=login_payload)
    assert login_res.status_code == 200
    assert login_res.json()["user"]["role"] == "couple"

    token_res = await client.post(
        "/auth/token",
        data={"username": "ana@example.com", "password": "testpass123"},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    assert token_res.status_code == 200
    oauth_token = token_res.json()["access_token"]

    me_res = await client.get(
        "/auth/me",
        headers={"Authorization": f"Bearer {oauth_token}"},
    )
    assert me_res.status_code == 200
    assert me_res.json()["email"] == "ana@example.com"

    couple_invite_res = await client.post(
        "/auth/invite",
        headers={"Authorization": f"Bearer {couple_token}"},
    )
    assert couple_invite_res.status_code == 403


@pytest.mark.asyncio
async def test_couple_and_planner_share_vendor_list(client: AsyncClient) -> None:
    register_res = await client.post(
        "/auth/register",
        json={
            "email": "planner@example.com",
            "password": "testpass123",
            "full_name": "Paula Planner",
            "wedding_name": "Ana & Luis",
        },
    )
    planner_token = register_res.json()["token"]["access_token"]
    invite_code = (
        await client.post("/auth/invite", headers={"Authorization": f"Bearer {planner_token}"})
    ).json()["invite_code"]
    join_res = await client.post(
        "/auth/join",
        json={
            "email": "luis@example.com",
            "password": "testpass123",
            "full_name": "Luis Perez",
            "invite_code": invite_code,
        },
    )
    couple_token = join_res.json()["token"]["access_token"]

    created = await client.post(
        "/vendors",
        json={"vendor_type": "Photographer", "vendor_name": "Luz Studio"},
        headers={"Authorization": f"Bearer {couple_token}"},
    )
    assert created.status_code == 201

    listed = await client.get("/vendors", headers={"Authorization": f"Bearer {planner_token}"})
    assert listed.status_code == 200
    assert [item["vendor_name"] for item in listed.json()["items"]] == ["Luz Studio"]


@pytest.mark.asyncio
async def test_duplicate_email_and_bad_credentials(client: AsyncClient) -> None:
    payload = {
        "email": "planner@example.com",
        "password": "testpass123",
        "full_name": "Paula Planner",
        "wedding_name": "Ana & Luis",
    }
    assert (await client.post("/auth/register", json=payload)).status_code == 201
    assert (await client.post("/auth/register", json=payload)).status_code == 409

    login_res = await client.post(
        "/auth/login",
        json={"email": "planner@example.com", "password": "wrongpass123"},
    )
    assert login_res.status_code == 401

    join_res = await client.post(
        "/auth/join",
        json={
            "email": "guest@example.com",
            "password": "testpass123",
            "full_name": "Guest",
            "invite_code": "NOSUCHCODE",
        },
    )
    assert join_res.status_code == 404


@pytest.mark.asyncio
async def test_wedding_workspace_lists_members_and_hides_code_from_couple(client: AsyncClient) -> None:
    register_res = await client.post(
        "/auth/register",
        json={
            "email": "planner@example.com",
            "password": "testpass123",
            "full_name": "Paula Planner",
            "wedding_name": "Ana & Luis",
            "wedding_date": "2025-09-20",
        },
    )
    planner_token = register_res.json()["token"]["access_token"]
    invite_code = (
        await client.post("/auth/invite", headers={"Authorization": f"Bearer {planner_token}"})
    ).json()["invite_code"]
    join_res = await client.post(
        "/auth/join",
        json={
            "email": "ana@example.com",
            "password": "testpass123",
            "full_name": "Ana Garcia",
            "invite_code": invite_code,
        },
    )
    couple_token = join_res.json()["token"]["access_token"]

    planner_view = await client.get("/auth/wedding", headers={"Authorization": f"Bearer {planner_token}"})
    assert planner_view.status_code == 200
    body = planner_view.json()
    assert body["wedding_date"] == "2025-09-20"
    assert body["invite_code"] == invite_code
    assert sorted(member["role"] for member in body["members"]) == ["couple", "planner"]

    couple_view = await client.get("/auth/wedding", headers={"Authorization": f"Bearer {couple_token}"})
    assert couple_view.status_code == 200
    assert couple_view.json()["invite_code"] is None
    assert len(couple_view.json()["members"]) == 2


@pytest.mark.asyncio
async def test_token_for_another_wedding_is_rejected(client: AsyncClient) -> None:
    register_res = await client.post(
        "/auth/register",
        json={
            "email": "planner@example.com",
            "password": "testpass123",
            "full_name": "Paula Planner",
            "wedding_name": "Ana & Luis",
        },
    )
    user = register_res.json()["user"]
    forged = create_access_token(user["id"], wedding_id=str(uuid4()), role="planner")

    response = await client.get("/vendors", headers={"Authorization": f"Bearer {forged}"})

    assert response.status_code == 401
    assert (await client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})).status_code == 401


@pytest.mark.asyncio
async def test_health_reports_parser_provider(client: AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "parser_provider" in response.json()
