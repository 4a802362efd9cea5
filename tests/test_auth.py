"""
API tests for authentication endpoints.

Tests:
- User registration and email verification
- Login, lockout responses
- Token refresh and logout
- Password reset flow
- Profile, password change and account deletion
"""

import pytest

from pulse.models.single_use_token import TokenPurpose
from pulse.models.user import UserStatus
from tests.conftest import DEFAULT_PASSWORD

API = "/api/v1/auth"


class TestUserRegistration:
    """Test user registration endpoint"""

    def test_register_success(self, client, notifier):
        response = client.post(f"{API}/register", json={
            "name": "Alice",
            "email": "Alice@Example.com",
            "password": "Abcdef1!",
            "confirm_password": "Abcdef1!"
        })

        assert response.status_code == 201
        data = response.json()
        assert data["user"]["email"] == "alice@example.com"
        assert data["user"]["status"] == "PENDING"
        assert "password_hash" not in data["user"]
        assert "verify" in data["message"].lower()
        assert notifier.sent[-1].purpose == TokenPurpose.EMAIL_VERIFICATION

    def test_register_duplicate_email(self, client, make_user):
        make_user()
        response = client.post(f"{API}/register", json={
            "name": "Alice",
            "email": "alice@example.com",
            "password": DEFAULT_PASSWORD,
            "confirm_password": DEFAULT_PASSWORD
        })

        assert response.status_code == 409
        assert response.json()["kind"] == "CONFLICT"

    @pytest.mark.parametrize("password", ["weak", "nouppercase1!", "NoSpecial123"])
    def test_register_weak_password(self, client, password):
        response = client.post(f"{API}/register", json={
            "name": "Alice",
            "email": "alice@example.com",
            "password": password,
            "confirm_password": password
        })
        assert response.status_code == 422

    def test_register_password_mismatch(self, client):
        response = client.post(f"{API}/register", json={
            "name": "Alice",
            "email": "alice@example.com",
            "password": DEFAULT_PASSWORD,
            "confirm_password": "Different1!"
        })
        assert response.status_code == 422

    def test_verify_email_then_login(self, client, notifier):
        client.post(f"{API}/register", json={
            "name": "Alice",
            "email": "alice@example.com",
            "password": DEFAULT_PASSWORD,
            "confirm_password": DEFAULT_PASSWORD
        })

        pending = client.post(f"{API}/login", json={"email": "alice@example.com", "password": DEFAULT_PASSWORD})
        assert pending.status_code == 403
        assert pending.json()["kind"] == "ACCOUNT_NOT_ACTIVE"

        token = notifier.last_token(TokenPurpose.EMAIL_VERIFICATION)
        assert client.post(f"{API}/verify-email", json={"token": token}).status_code == 200

        response = client.post(f"{API}/login", json={"email": "alice@example.com", "password": DEFAULT_PASSWORD})
        assert response.status_code == 200
        assert response.json()["user"]["status"] == "ACTIVE"

    def test_verify_email_bad_token(self, client):
        response = client.post(f"{API}/verify-email", json={"token": "f" * 64})
        assert response.status_code == 404
        assert response.json() == {"kind": "NOT_FOUND", "detail": "Invalid or expired token"}

    def test_resend_verification(self, client, notifier):
        client.post(f"{API}/register", json={
            "name": "Alice",
            "email": "alice@example.com",
            "password": DEFAULT_PASSWORD,
            "confirm_password": DEFAULT_PASSWORD
        })
        response = client.post(f"{API}/resend-verification", json={"email": "alice@example.com"})

        assert response.status_code == 200
        assert len([n for n in notifier.sent if n.purpose == TokenPurpose.EMAIL_VERIFICATION]) == 2


class TestLogin:
    """Test login endpoint"""

    def test_login_success(self, client, make_user):
        make_user()
        response = client.post(
            f"{API}/login",
            json={"email": "alice@example.com", "password": DEFAULT_PASSWORD},
            headers={"User-Agent": "pytest-browser"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 900
        assert data["access_token"] and data["refresh_token"]
        assert data["user"]["email"] == "alice@example.com"

    def test_login_wrong_password(self, client, make_user):
        make_user()
        wrong = client.post(f"{API}/login", json={"email": "alice@example.com", "password": "Wrong-pass1!"})
        unknown = client.post(f"{API}/login", json={"email": "nobody@example.com", "password": "Wrong-pass1!"})

        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json() == {"kind": "AUTHENTICATION", "detail": "Invalid email or password"}

    def test_lockout_response(self, client, make_user):
        make_user()
        for _ in range(2):
            client.post(f"{API}/login", json={"email": "alice@example.com", "password": "Wrong-pass1!"})

        response = client.post(f"{API}/login", json={"email": "alice@example.com", "password": "Wrong-pass1!"})
        assert response.status_code == 423
        assert response.headers["retry-after"] == "900"
        assert response.json()["details"]["retry_after_seconds"] == 900

        # Correct password while locked
        locked = client.post(f"{API}/login", json={"email": "alice@example.com", "password": DEFAULT_PASSWORD})
        assert locked.status_code == 423


class TestTokens:
    """Test protected access, refresh and logout"""

    def test_me(self, client, make_user, login):
        make_user()
        _, headers = login()

        response = client.get(f"{API}/me", headers=headers)
        assert response.status_code == 200
        assert response.json()["email"] == "alice@example.com"

    def test_me_requires_token(self, client):
        assert client.get(f"{API}/me").status_code in (401, 403)
        bad = client.get(f"{API}/me", headers={"Authorization": "Bearer not-a-token"})
        assert bad.status_code == 401

    def test_refresh_token_cannot_access(self, client, make_user, login):
        make_user()
        data, _ = login()
        response = client.get(f"{API}/me", headers={"Authorization": f"Bearer {data['refresh_token']}"})
        assert response.status_code == 401

    def test_refresh(self, client, make_user, login):
        make_user()
        data, _ = login()

        response = client.post(f"{API}/refresh", json={"refresh_token": data["refresh_token"]})
        assert response.status_code == 200
        new_access = response.json()["access_token"]
        assert client.get(f"{API}/me", headers={"Authorization": f"Bearer {new_access}"}).status_code == 200

        # Not rotated: the same refresh token works again
        again = client.post(f"{API}/refresh", json={"refresh_token": data["refresh_token"]})
        assert again.status_code == 200

    def test_refresh_with_garbage(self, client):
        response = client.post(f"{API}/refresh", json={"refresh_token": "garbage"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid refresh token"

    def test_logout(self, client, make_user, login):
        make_user()
        _, headers = login()
        _, other_headers = login()

        assert client.post(f"{API}/logout", headers=headers).status_code == 200
        assert client.get(f"{API}/me", headers=headers).status_code == 401
        # Other sessions are unaffected
        assert client.get(f"{API}/me", headers=other_headers).status_code == 200

    def test_banned_user_rejected(self, client, make_user, login, db_session):
        user = make_user()
        _, headers = login()
        user.status = UserStatus.BANNED
        db_session.commit()

        assert client.get(f"{API}/me", headers=headers).status_code == 403


class TestPasswordReset:
    """Test forgot/reset password endpoints"""

    def test_forgot_password_same_response(self, client, make_user):
        make_user()
        existing = client.post(f"{API}/forgot-password", json={"email": "alice@example.com"})
        missing = client.post(f"{API}/forgot-password", json={"email": "nobody@example.com"})

        assert existing.status_code == missing.status_code == 200
        assert existing.content == missing.content

    def test_reset_password_flow(self, client, make_user, login, notifier):
        make_user()
        _, headers = login()
        client.post(f"{API}/forgot-password", json={"email": "alice@example.com"})
        token = notifier.last_token(TokenPurpose.PASSWORD_RESET)

        check = client.get(f"{API}/reset-password/{token}")
        assert check.json() == {"valid": True}

        response = client.post(f"{API}/reset-password", json={
            "token": token,
            "password": "Newpass1!",
            "confirm_password": "Newpass1!"
        })
        assert response.status_code == 200

        # Existing sessions were revoked
        assert client.get(f"{API}/me", headers=headers).status_code == 401
        assert client.get(f"{API}/reset-password/{token}").json() == {"valid": False}

        old = client.post(f"{API}/login", json={"email": "alice@example.com", "password": DEFAULT_PASSWORD})
        new = client.post(f"{API}/login", json={"email": "alice@example.com", "password": "Newpass1!"})
        assert old.status_code == 401
        assert new.status_code == 200

    def test_reset_with_invalid_token(self, client):
        response = client.post(f"{API}/reset-password", json={
            "token": "f" * 64,
            "password": "Newpass1!",
            "confirm_password": "Newpass1!"
        })
        assert response.status_code == 404


class TestAccount:
    """Test account deletion"""

    def test_delete_me(self, client, make_user, login):
        make_user()
        _, headers = login()

        response = client.delete(f"{API}/me", headers=headers)
        assert response.status_code == 200

        assert client.get(f"{API}/me", headers=headers).status_code == 401
        relogin = client.post(f"{API}/login", json={"email": "alice@example.com", "password": DEFAULT_PASSWORD})
        assert relogin.status_code == 401


class TestChangePassword:
    """Test PATCH /me/password"""

    def test_change_password(self, client, make_user, login):
        make_user()
        _, other_headers = login()
        _, headers = login()

        response = client.patch(f"{API}/me/password", headers=headers, json={
            "current_password": DEFAULT_PASSWORD,
            "new_password": "Newpass1!",
            "confirm_password": "Newpass1!"
        })

        assert response.status_code == 200
        assert client.get(f"{API}/me", headers=headers).status_code == 200
        assert client.get(f"{API}/me", headers=other_headers).status_code == 401
        new = client.post(f"{API}/login", json={"email": "alice@example.com", "password": "Newpass1!"})
        assert new.status_code == 200

    def test_wrong_current_password(self, client, make_user, login):
        make_user()
        _, headers = login()

        response = client.patch(f"{API}/me/password", headers=headers, json={
            "current_password": "Wrong-pass1!",
            "new_password": "Newpass1!",
            "confirm_password": "Newpass1!"
        })

        assert response.status_code == 401
        assert response.json()["detail"] == "Current password is incorrect"

    def test_weak_new_password(self, client, make_user, login):
        make_user()
        _, headers = login()
        response = client.patch(f"{API}/me/password", headers=headers, json={
            "current_password": DEFAULT_PASSWORD,
            "new_password": "weak",
            "confirm_password": "weak"
        })
        assert response.status_code == 422

    def test_requires_auth(self, client):
        response = client.patch(f"{API}/me/password", json={
            "current_password": DEFAULT_PASSWORD,
            "new_password": "Newpass1!",
            "confirm_password": "Newpass1!"
        })
        assert response.status_code in (401, 403)


class TestHealthCheck:
    """Test health check endpoints"""

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_detailed_health_check(self, client):
        response = client.get("/health/detailed")
        assert response.status_code == 200
        assert response.json()["checks"]["database"]["status"] == "healthy"

    def test_root(self, client):
        assert client.get("/").json()["status"] == "healthy"
