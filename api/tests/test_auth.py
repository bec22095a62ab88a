from datetime import timedelta

from jose import jwt

from archive.auth import ALGORITHM, create_access_token, verify_password
from archive.models import Admin, AdminLog
from conftest import PASSWORD


def _login(client, username="moderator", password=PASSWORD):
    return client.post("/auth/login", json={"username": username, "password": password})


def test_login_returns_token_and_admin(client, db, admin):
    r = _login(client)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["admin"]["username"] == "moderator"
    assert body["admin"]["role"] == "admin"
    assert "password_hash" not in body["admin"]

    verified = client.get("/auth/verify", headers={"Authorization": f"Bearer {body['token']}"})
    assert verified.json()["valid"] is True

    db.expire_all()
    assert db.get(Admin, admin.id).last_login is not None
    assert db.query(AdminLog).filter(AdminLog.action == "login").count() == 1


def test_login_accepts_email(client, admin):
    assert _login(client, username="moderator@example.org").status_code == 200


def test_wrong_password(client, admin):
    r = _login(client, password="nope")
    assert r.status_code == 401
    assert r.json() == {"error": "Invalid credentials"}
    assert _login(client, username="ghost").status_code == 401


def test_inactive_admin_cannot_login(client, make_admin):
    make_admin(username="retired", is_active=False)
    assert _login(client, username="retired").status_code == 401


def test_failed_logins_lock_out_even_correct_password(client, admin, login_limiter):
    for _ in range(login_limiter.max_attempts):
        assert _login(client, password="wrong").status_code == 401

    r = _login(client)
    assert r.status_code == 429
    assert r.json() == {"error": "Too many login attempts, please try again later."}


def test_successful_login_resets_the_counter(client, admin, login_limiter):
    for _ in range(login_limiter.max_attempts - 1):
        _login(client, password="wrong")
    assert _login(client).status_code == 200

    for _ in range(login_limiter.max_attempts - 1):
        _login(client, password="wrong")
    assert _login(client).status_code == 200


def test_missing_token(client):
    r = client.get("/auth/verify")
    assert r.status_code == 401
    assert r.json() == {"error": "Access token required"}


def test_expired_token(client, admin):
    token = create_access_token(admin, expires_delta=timedelta(seconds=-1))
    r = client.get("/auth/verify", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.json() == {"error": "Token expired"}


def test_forged_token(client, admin):
    token = jwt.encode({"adminId": admin.id, "role": "super_admin"}, "not-the-key", algorithm=ALGORITHM)
    r = client.get("/auth/verify", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 403
    assert r.json() == {"error": "Invalid token"}


def test_deactivated_admin_token_stops_working(client, db, admin, admin_headers):
    assert client.get("/auth/verify", headers=admin_headers).status_code == 200
    admin.is_active = False
    db.commit()

    r = client.get("/auth/verify", headers=admin_headers)
    assert r.status_code == 401
    assert r.json() == {"error": "Invalid token"}


def test_profile_password_change(client, db, admin, admin_headers):
    r = client.put("/auth/profile", json={"newPassword": "another-pass"}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json() == {"error": "Current password is incorrect"}

    r = client.put(
        "/auth/profile",
        json={"currentPassword": PASSWORD, "newPassword": "another-pass"},
        headers=admin_headers,
    )
    assert r.status_code == 200
    db.expire_all()
    assert verify_password("another-pass", db.get(Admin, admin.id).password_hash)
    assert _login(client, password="another-pass").status_code == 200


def test_profile_email_must_be_unique(client, make_admin, admin_headers):
    make_admin(username="other")
    r = client.put("/auth/profile", json={"email": "other@example.org"}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json() == {"error": "Email already in use"}

    r = client.put("/auth/profile", json={"email": "new@example.org"}, headers=admin_headers)
    assert r.json()["email"] == "new@example.org"


def test_account_management_needs_super_admin(client, admin_headers):
    r = client.get("/admin/admins", headers=admin_headers)
    assert r.status_code == 403
    assert r.json() == {"error": "Super admin privileges required"}


def test_super_admin_manages_accounts(client, super_admin, super_headers):
    r = client.post(
        "/admin/admins",
        json={"username": "helper", "email": "helper@example.org", "password": "helper-pass"},
        headers=super_headers,
    )
    assert r.status_code == 201, r.text
    helper_id = r.json()["id"]
    assert r.json()["role"] == "admin"

    duplicate = client.post(
        "/admin/admins",
        json={"username": "helper", "email": "x@example.org", "password": "helper-pass"},
        headers=super_headers,
    )
    assert duplicate.status_code == 400

    r = client.patch(f"/admin/admins/{helper_id}/toggle", headers=super_headers)
    assert r.json()["is_active"] is False
    assert _login(client, username="helper", password="helper-pass").status_code == 401

    assert client.delete(f"/admin/admins/{helper_id}", headers=super_headers).status_code == 204
    assert client.get(f"/admin/admins/{helper_id}", headers=super_headers).status_code == 404


def test_super_admin_cannot_lock_themselves_out(client, super_admin, super_headers):
    own = f"/admin/admins/{super_admin.id}"
    assert client.patch(f"{own}/toggle", headers=super_headers).status_code == 400
    assert client.delete(own, headers=super_headers).status_code == 400

    r = client.put(own, json={"role": "admin"}, headers=super_headers)
    assert r.status_code == 400
    assert r.json() == {"error": "You cannot change your own role"}
