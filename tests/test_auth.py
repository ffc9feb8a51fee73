import pytest
from conftest import auth_headers, make_instance, make_user

from n2wash.models import ROLE_EMPLOYEE
from n2wash.security import create_access_token, decode_access_token, hash_password, verify_password
from n2wash.shared.timeutils import utcnow


def test_password_hashing():
    hashed = hash_password("secret123")
    assert verify_password("secret123", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("secret123", "not-a-hash")


def test_access_token_claims():
    claims = decode_access_token(create_access_token(7, instance_id=3))
    assert claims["sub"] == "7"
    assert claims["instance_id"] == 3
    assert decode_access_token("garbage") is None


class TestLogin:
    def test_tenant_login_with_instance_slug(self, client, admin):
        response = client.post(
            "/auth/login", json={"username": "Admin", "password": "secret123", "instanceSlug": "studio"}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["tokenType"] == "bearer"
        assert body["user"]["instance"]["slug"] == "studio"
        assert body["user"]["isSuperAdmin"] is False

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['accessToken']}"})
        assert me.status_code == 200
        assert me.json()["username"] == "admin"

    def test_tenant_login_from_admin_subdomain(self, client, admin):
        response = client.post(
            "/auth/login",
            json={"username": "admin", "password": "secret123"},
            headers={"host": "studio.admin.n2wash.com"},
        )
        assert response.status_code == 200

    def test_same_username_on_other_instance_is_rejected(self, client, db, admin):
        make_instance(db, slug="other")
        response = client.post(
            "/auth/login", json={"username": "admin", "password": "secret123", "instanceSlug": "other"}
        )
        assert response.status_code == 401

    @pytest.mark.parametrize(
        "username, password",
        [("", "secret123"), ("   ", "secret123"), ("admin", ""), ("admin", "   ")],
    )
    def test_blank_credentials(self, client, admin, username, password):
        response = client.post(
            "/auth/login", json={"username": username, "password": password, "instanceSlug": "studio"}
        )
        assert response.status_code == 422

    def test_wrong_password(self, client, admin):
        response = client.post(
            "/auth/login", json={"username": "admin", "password": "nope", "instanceSlug": "studio"}
        )
        assert response.status_code == 401

    def test_blocked_user(self, client, db, admin):
        admin.is_blocked = True
        db.commit()
        response = client.post(
            "/auth/login", json={"username": "admin", "password": "secret123", "instanceSlug": "studio"}
        )
        assert response.status_code == 403

    def test_super_admin_login_without_instance(self, client, super_admin):
        response = client.post("/auth/login", json={"username": "root", "password": "secret123"})
        assert response.status_code == 200
        assert response.json()["user"]["isSuperAdmin"] is True

    def test_tenant_user_cannot_login_as_super_admin(self, client, admin):
        response = client.post(
            "/auth/login",
            json={"username": "admin", "password": "secret123"},
            headers={"host": "super.admin.n2wash.com"},
        )
        assert response.status_code == 401


class TestInstanceAccess:
    def test_missing_token(self, client, instance):
        assert client.get(f"/instances/{instance.id}/stations").status_code in (401, 403)

    def test_invalid_token(self, client, instance):
        response = client.get(f"/instances/{instance.id}/stations", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_role_on_other_instance_is_forbidden(self, client, db, instance):
        other = make_instance(db, slug="other")
        outsider = make_user(db, other, "outsider")
        response = client.get(f"/instances/{instance.id}/stations", headers=auth_headers(outsider))
        assert response.status_code == 403

    def test_employee_cannot_use_admin_routes(self, client, db, instance):
        employee = make_user(db, instance, "worker", role=ROLE_EMPLOYEE)
        headers = auth_headers(employee)
        assert client.get(f"/instances/{instance.id}/stations", headers=headers).status_code == 200
        response = client.post(f"/instances/{instance.id}/stations", json={"name": "Bay"}, headers=headers)
        assert response.status_code == 403

    def test_super_admin_passes_instance_checks(self, client, instance, super_admin):
        response = client.get(f"/instances/{instance.id}/stations", headers=auth_headers(super_admin))
        assert response.status_code == 200

    def test_soft_deleted_instance_is_not_found(self, client, db, instance, admin_headers):
        instance.deleted_at = utcnow()
        db.commit()
        assert client.get(f"/instances/{instance.id}/stations", headers=admin_headers).status_code == 404
