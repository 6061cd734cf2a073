"""API tests for /api/v1/users/* -- self-service and admin management."""

from __future__ import annotations

PASSWORD = "Secret123!"


def _signup(client, email: str, name: str = "Tester") -> dict:
    resp = client.post(
        "/api/v1/auth/signup",
        json={"name": name, "email": email, "password": PASSWORD, "password_confirm": PASSWORD},
    )
    assert resp.status_code == 201, resp.text
    client.cookies.clear()
    return resp.json()


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _admin_token(client, store, email: str) -> tuple[int, str]:
    user_id = _signup(client, email, name="Admin")["user"]["id"]
    store.update(user_id, role="admin")
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    client.cookies.clear()
    return user_id, resp.json()["token"]


# ---------------------------------------------------------------------------
# Self-service
# ---------------------------------------------------------------------------


def test_update_me(api_client) -> None:
    client, _, _ = api_client
    token = _signup(client, "me-update@example.com")["token"]
    resp = client.patch("/api/v1/users/me", headers=_bearer(token), json={"name": "Renamed"})
    assert resp.status_code == 200
    assert resp.json()["name"] == "Renamed"
    assert resp.json()["email"] == "me-update@example.com"


def test_update_me_rejects_password(api_client) -> None:
    client, _, _ = api_client
    token = _signup(client, "me-password@example.com")["token"]
    resp = client.patch(
        "/api/v1/users/me",
        headers=_bearer(token),
        json={"password": "NewPass456!", "password_confirm": "NewPass456!"},
    )
    assert resp.status_code == 400
    assert "update-password" in resp.json()["error"]["message"]


def test_update_me_requires_auth(api_client) -> None:
    client, _, _ = api_client
    assert client.patch("/api/v1/users/me", json={"name": "X"}).status_code == 401


def test_delete_me_deactivates(api_client) -> None:
    client, _, _ = api_client
    token = _signup(client, "me-delete@example.com")["token"]
    resp = client.delete("/api/v1/users/me", headers=_bearer(token))
    assert resp.status_code == 204

    assert client.get("/api/v1/auth/me", headers=_bearer(token)).status_code == 401
    login = client.post("/api/v1/auth/login", json={"email": "me-delete@example.com", "password": PASSWORD})
    assert login.status_code == 401


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


def test_list_users_requires_admin(api_client) -> None:
    client, _, _ = api_client
    token = _signup(client, "plain-user@example.com")["token"]
    resp = client.get("/api/v1/users", headers=_bearer(token))
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "forbidden"


def test_list_users_unauthenticated(api_client) -> None:
    client, _, _ = api_client
    assert client.get("/api/v1/users").status_code == 401


def test_admin_lists_users(api_client) -> None:
    client, store, _ = api_client
    _, token = _admin_token(client, store, "admin-list@example.com")
    resp = client.get("/api/v1/users", headers=_bearer(token))
    assert resp.status_code == 200
    emails = [u["email"] for u in resp.json()]
    assert "admin-list@example.com" in emails
    assert all("password_hash" not in u for u in resp.json())


def test_admin_get_user_not_found(api_client) -> None:
    client, store, _ = api_client
    _, token = _admin_token(client, store, "admin-get@example.com")
    resp = client.get("/api/v1/users/999999", headers=_bearer(token))
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_admin_changes_role(api_client) -> None:
    client, store, _ = api_client
    _, token = _admin_token(client, store, "admin-role@example.com")
    target = _signup(client, "promote-me@example.com")["user"]["id"]

    resp = client.patch(f"/api/v1/users/{target}", headers=_bearer(token), json={"role": "lead-guide"})
    assert resp.status_code == 200
    assert resp.json()["role"] == "lead-guide"


def test_admin_rejects_unknown_role(api_client) -> None:
    client, store, _ = api_client
    _, token = _admin_token(client, store, "admin-badrole@example.com")
    target = _signup(client, "badrole-target@example.com")["user"]["id"]
    resp = client.patch(f"/api/v1/users/{target}", headers=_bearer(token), json={"role": "superuser"})
    assert resp.status_code == 422


def test_admin_patch_without_changes(api_client) -> None:
    client, store, _ = api_client
    admin_id, token = _admin_token(client, store, "admin-noop@example.com")
    resp = client.patch(f"/api/v1/users/{admin_id}", headers=_bearer(token), json={})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "no_changes"


def test_admin_cannot_lock_self_out(api_client) -> None:
    client, store, _ = api_client
    admin_id, token = _admin_token(client, store, "admin-self@example.com")
    for body in ({"active": False}, {"role": "user"}):
        resp = client.patch(f"/api/v1/users/{admin_id}", headers=_bearer(token), json=body)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "self_lockout"


def test_admin_deletes_user(api_client) -> None:
    client, store, _ = api_client
    _, admin_token = _admin_token(client, store, "admin-delete@example.com")
    target = _signup(client, "delete-me@example.com")
    target_token = target["token"]

    resp = client.delete(f"/api/v1/users/{target['user']['id']}", headers=_bearer(admin_token))
    assert resp.status_code == 204
    assert store.find_by_id(target["user"]["id"]) is None

    me = client.get("/api/v1/auth/me", headers=_bearer(target_token))
    assert me.status_code == 401
    assert me.json()["error"]["code"] == "not_authenticated"


def test_admin_delete_missing_user(api_client) -> None:
    client, store, _ = api_client
    _, token = _admin_token(client, store, "admin-delete-missing@example.com")
    resp = client.delete("/api/v1/users/999999", headers=_bearer(token))
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_admin_cannot_delete_self(api_client) -> None:
    client, store, _ = api_client
    admin_id, token = _admin_token(client, store, "admin-delete-self@example.com")
    resp = client.delete(f"/api/v1/users/{admin_id}", headers=_bearer(token))
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "self_lockout"
    assert store.find_by_id(admin_id) is not None


def test_delete_user_requires_admin(api_client) -> None:
    client, _, _ = api_client
    token = _signup(client, "delete-attacker@example.com")["token"]
    victim = _signup(client, "delete-victim@example.com")["user"]["id"]
    resp = client.delete(f"/api/v1/users/{victim}", headers=_bearer(token))
    assert resp.status_code == 403
