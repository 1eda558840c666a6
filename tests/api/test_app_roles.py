"""Tests for the app user and app role endpoints."""
from httpx import AsyncClient


async def test__list_roles(client: AsyncClient) -> None:
    response = await client.get("/app-roles/", params={"order_by": "RoleName"})
    assert response.status_code == 200
    data = response.json()
    assert data["count_across_pages"] == 5
    assert [role["role_name"] for role in data["data"]] == ["IT", "admin", "disabled", "readonly", "user"]


async def test__delete_role_detaches_users(client: AsyncClient) -> None:
    response = await client.delete("/app-roles/-2")
    assert response.status_code == 204

    response = await client.get("/app-users/-2")
    assert response.status_code == 200
    assert response.json()["user_name"] == "Maria"
    assert response.json()["role_id"] is None

    assert (await client.get("/app-roles/-2")).status_code == 404


async def test__create_user_and_page_by_name(client: AsyncClient) -> None:
    response = await client.post("/app-users/", json={"user_name": "Alice", "role_id": -3})
    assert response.status_code == 201
    assert response.json()["sys_user"] == "Maria"

    response = await client.get("/app-users/", params={"order_by": "UserName", "top": 1})
    data = response.json()
    assert data["count_across_pages"] == 6
    assert data["data"][0]["user_name"] == "Alice"


async def test__duplicate_role_name_returns_409(client: AsyncClient) -> None:
    response = await client.post("/app-roles/", json={"role_name": "admin"})
    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "UniqueConstraintError"


async def test__user_with_unknown_role_returns_409(client: AsyncClient) -> None:
    response = await client.post("/app-users/", json={"user_name": "Zed", "role_id": -99})
    assert response.status_code == 409
