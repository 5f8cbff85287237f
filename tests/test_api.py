import pytest
from sqlalchemy import select

from account_service.models.role import Role
from account_service.scripts.create_admin import create_admin_user

pytestmark = pytest.mark.anyio


async def _register(http, username="alice", password="password1", **extra):
    return await http.post("/api/auth/register", json={"username": username, "password": password, **extra})


async def _login(http, username="alice", password="password1"):
    response = await http.post("/api/auth/login", json={"username": username, "password": password})
    return response


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def admin_token(http, db):
    await create_admin_user("root", "rootpass", db)
    response = await _login(http, "root", "rootpass")
    return response.json()["data"]["token"]


@pytest.fixture
async def user_token(http):
    await _register(http)
    response = await _login(http)
    return response.json()["data"]["token"]


# ── Public routes ────────────────────────────────────────────────────

async def test_health(http):
    response = await http.get("/health")
    assert response.json() == {"status": "ok"}


async def test_register_returns_user_without_password(http):
    response = await _register(http, phone="13800000000", email="alice@example.com")
    body = response.json()

    assert response.status_code == 200
    assert body["code"] == 200
    assert body["data"]["username"] == "alice"
    assert body["data"]["roles"] == ["ROLE_USER"]
    assert "password_hash" not in body["data"]


async def test_register_duplicate_is_400(http):
    await _register(http)
    response = await _register(http)
    assert response.status_code == 400
    assert response.json() == {"code": 400, "message": "Username already exists"}


@pytest.mark.parametrize(
    "payload",
    [
        {"username": "a", "password": "password1"},
        {"username": "alice", "password": "short"},
        {"username": "alice", "password": "password1", "phone": "12345"},
        {"username": "alice", "password": "password1", "email": "not-an-email"},
    ],
)
async def test_register_validation_is_400(http, payload):
    response = await http.post("/api/auth/register", json=payload)
    assert response.status_code == 400
    assert response.json()["code"] == 400


async def test_login_and_reuse(http):
    await _register(http)
    first = await _login(http)
    second = await _login(http)

    assert first.status_code == 200
    assert first.json()["data"]["token"] == second.json()["data"]["token"]


async def test_bad_login_is_401(http):
    await _register(http)
    response = await _login(http, password="wrong-password")
    assert response.status_code == 401
    assert response.json() == {"code": 401, "message": "Invalid username or password"}


async def test_overlong_password_on_register_is_400(http):
    response = await _register(http, password="x" * 80)
    assert response.status_code == 400
    assert response.json()["code"] == 400


async def test_overlong_password_on_login_is_400_and_not_counted(http, admin_token, user_token):
    response = await _login(http, password="x" * 80)
    assert response.status_code == 400
    assert response.json()["code"] == 400

    alice = await http.get("/api/user/username/alice", headers=_bearer(admin_token))
    assert alice.json()["data"]["login_fail_count"] == 0


async def test_validate_is_signature_only(http, user_token):
    await http.delete("/api/auth/logout", headers=_bearer(user_token))

    response = await http.get("/api/auth/validate", params={"token": user_token})
    assert response.json()["data"] == {"valid": True}

    response = await http.get("/api/auth/validate", params={"token": "garbage"})
    assert response.json()["data"] == {"valid": False}


async def test_logout_twice(http, user_token):
    first = await http.delete("/api/auth/logout", headers=_bearer(user_token))
    second = await http.delete("/api/auth/logout", headers=_bearer(user_token))
    assert first.status_code == second.status_code == 200


async def test_logout_without_header_is_401(http):
    response = await http.delete("/api/auth/logout")
    assert response.status_code == 401


# ── Authenticated routes ─────────────────────────────────────────────

async def test_me_and_claims(http, user_token):
    me = await http.get("/api/auth/me", headers=_bearer(user_token))
    assert me.json()["data"]["username"] == "alice"

    claims = await http.get("/api/auth/claims", headers=_bearer(user_token))
    data = claims.json()["data"]
    assert data["username"] == "alice"
    assert data["roles"] == ["ROLE_USER"]
    assert data["is_admin"] is False


async def test_me_after_logout_is_401(http, user_token):
    await http.delete("/api/auth/logout", headers=_bearer(user_token))
    response = await http.get("/api/auth/me", headers=_bearer(user_token))
    assert response.status_code == 401
    assert response.json()["message"] == "Token invalid or expired"


async def test_refresh_rotates_active_token(http, user_token):
    response = await http.post("/api/auth/refresh", headers=_bearer(user_token))
    new_token = response.json()["data"]["token"]
    assert new_token != user_token

    assert (await http.get("/api/auth/me", headers=_bearer(new_token))).status_code == 200
    assert (await http.get("/api/auth/me", headers=_bearer(user_token))).status_code == 401


# ── Admin routes ─────────────────────────────────────────────────────

async def test_admin_routes_need_a_token(http):
    response = await http.get("/api/user/all")
    assert response.status_code == 401


async def test_admin_routes_refuse_plain_users(http, user_token):
    response = await http.get("/api/user/all", headers=_bearer(user_token))
    assert response.status_code == 403
    assert response.json() == {"code": 403, "message": "Insufficient permissions"}


async def test_admin_lists_and_fetches_users(http, admin_token, user_token):
    page = (await http.get("/api/user/all", headers=_bearer(admin_token))).json()["data"]
    assert page["total"] == 2
    assert [u["username"] for u in page["list"]] == ["root", "alice"]

    alice_id = page["list"][1]["id"]
    by_id = await http.get(f"/api/user/{alice_id}", headers=_bearer(admin_token))
    by_name = await http.get("/api/user/username/alice", headers=_bearer(admin_token))
    assert by_id.json()["data"] == by_name.json()["data"]


async def test_missing_user_is_400(http, admin_token):
    response = await http.get("/api/user/9999", headers=_bearer(admin_token))
    assert response.status_code == 400
    assert response.json()["message"] == "User not found"


async def test_admin_search(http, admin_token, user_token):
    response = await http.post(
        "/api/user/search",
        json={"username": "ali", "page_num": 1, "page_size": 5},
        headers=_bearer(admin_token),
    )
    data = response.json()["data"]
    assert data["total"] == 1
    assert data["list"][0]["username"] == "alice"


async def test_search_with_half_open_range_is_400(http, admin_token):
    response = await http.post(
        "/api/user/search",
        json={"created_from": "2026-01-01T00:00:00Z"},
        headers=_bearer(admin_token),
    )
    assert response.status_code == 400


async def test_block_kills_session_and_login(http, admin_token, user_token):
    me = (await http.get("/api/auth/me", headers=_bearer(user_token))).json()["data"]

    response = await http.put(f"/api/user/{me['id']}/block", headers=_bearer(admin_token))
    assert response.json()["data"]["status"] == "BLOCKED"

    assert (await http.get("/api/auth/me", headers=_bearer(user_token))).status_code == 401
    login = await _login(http)
    assert login.status_code == 401
    assert login.json()["message"] == "Account is blocked"

    await http.put(f"/api/user/{me['id']}/unblock", headers=_bearer(admin_token))
    assert (await _login(http)).status_code == 200


async def test_change_roles_then_relogin_grants_admin(http, admin_token, user_token, db):
    me = (await http.get("/api/auth/me", headers=_bearer(user_token))).json()["data"]
    roles = (await http.get("/api/user/role/all", headers=_bearer(admin_token))).json()["data"]
    admin_role_id = next(r["id"] for r in roles if r["name"] == "ROLE_ADMIN")

    response = await http.put(
        f"/api/user/{me['id']}/role", json={"role_ids": [admin_role_id]}, headers=_bearer(admin_token),
    )
    assert response.json()["data"]["roles"] == ["ROLE_ADMIN"]

    # Old token no longer passes; a fresh login carries the new roles.
    assert (await http.get("/api/user/all", headers=_bearer(user_token))).status_code == 401
    new_token = (await _login(http)).json()["data"]["token"]
    assert (await http.get("/api/user/all", headers=_bearer(new_token))).status_code == 200


async def test_change_roles_with_unknown_id(http, admin_token, user_token):
    me = (await http.get("/api/auth/me", headers=_bearer(user_token))).json()["data"]
    response = await http.put(
        f"/api/user/{me['id']}/role", json={"role_ids": [4242]}, headers=_bearer(admin_token),
    )
    assert response.status_code == 400
    assert "4242" in response.json()["message"]


async def test_password_change_routes(http, admin_token, user_token):
    me = (await http.get("/api/auth/me", headers=_bearer(user_token))).json()["data"]

    wrong = await http.put(
        f"/api/user/{me['id']}/password",
        json={"old_password": "nope", "new_password": "another1"},
        headers=_bearer(admin_token),
    )
    assert wrong.status_code == 400

    ok = await http.put(
        f"/api/user/{me['id']}/password",
        json={"old_password": "password1", "new_password": "another1"},
        headers=_bearer(admin_token),
    )
    assert ok.status_code == 200
    assert (await http.get("/api/auth/me", headers=_bearer(user_token))).status_code == 401

    forced = await http.put(
        f"/api/user/{me['id']}/password/force",
        json={"new_password": "forced99"},
        headers=_bearer(admin_token),
    )
    assert forced.status_code == 200
    assert (await _login(http, password="forced99")).status_code == 200


async def test_overlong_forced_password_is_400(http, admin_token, user_token):
    me = (await http.get("/api/auth/me", headers=_bearer(user_token))).json()["data"]

    response = await http.put(
        f"/api/user/{me['id']}/password/force",
        json={"new_password": "x" * 80},
        headers=_bearer(admin_token),
    )
    assert response.status_code == 400
    assert response.json()["code"] == 400
    assert (await _login(http)).status_code == 200


async def test_update_and_delete(http, admin_token, user_token):
    me = (await http.get("/api/auth/me", headers=_bearer(user_token))).json()["data"]

    response = await http.put(
        f"/api/user/{me['id']}", json={"email": "alice@example.com"}, headers=_bearer(admin_token),
    )
    assert response.json()["data"]["email"] == "alice@example.com"
    assert response.json()["data"]["updated_by"] == "root"

    response = await http.delete(f"/api/user/{me['id']}", headers=_bearer(admin_token))
    assert response.status_code == 200

    response = await http.get("/api/user/username/alice", headers=_bearer(admin_token))
    assert response.status_code == 400
    assert (await _login(http)).status_code == 401


async def test_role_catalog(http, admin_token, db):
    response = await http.get("/api/user/role/all", headers=_bearer(admin_token))
    names = [r["name"] for r in response.json()["data"]]
    stored = (await db.execute(select(Role.name).order_by(Role.id))).scalars().all()
    assert names == list(stored) == ["ROLE_USER", "ROLE_ADMIN"]
