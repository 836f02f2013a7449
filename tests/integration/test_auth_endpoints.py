from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import select

from conftest import DEFAULT_PASSWORD, auth_headers
from marketplace.auth import create_refresh_token, subject_id, verify_access_token, verify_refresh_token
from marketplace.models import User, UserRole, utcnow
from marketplace.utils import hash_token

pytestmark = pytest.mark.integration


def register_body(**overrides):
    body = {
        "email": "new.student@example.com",
        "password": "Password123",
        "firstName": "New",
        "lastName": "Student",
    }
    body.update(overrides)
    return body


async def load_user(session_factory, email):
    async with session_factory() as session:
        result = await session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()


class TestRegister:
    @patch("marketplace.routes.auth_routes.send_verification_email")
    async def test_register_success(self, mock_send, client, session_factory):
        response = await client.post("/auth/register", json=register_body())

        assert response.status_code == 201
        data = response.json()
        assert data["accessToken"]
        assert data["refreshToken"]
        assert data["tokenType"] == "bearer"
        assert data["user"]["email"] == "new.student@example.com"
        assert data["user"]["role"] == "STUDENT"
        assert data["user"]["isEmailVerified"] is False

        user = await load_user(session_factory, "new.student@example.com")
        assert user.password_hash != "Password123"
        mock_send.assert_called_once()
        raw_token = mock_send.call_args.args[2]
        # Only the hash of the emailed token is stored
        assert user.email_verification_token == hash_token(raw_token)

    @patch("marketplace.routes.auth_routes.send_verification_email")
    async def test_register_as_instructor(self, mock_send, client):
        response = await client.post("/auth/register", json=register_body(role="INSTRUCTOR"))

        assert response.status_code == 201
        assert response.json()["user"]["role"] == "INSTRUCTOR"

    async def test_register_as_admin_rejected(self, client):
        response = await client.post("/auth/register", json=register_body(role="ADMIN"))
        assert response.status_code == 422

    async def test_register_weak_password(self, client):
        response = await client.post("/auth/register", json=register_body(password="password"))
        assert response.status_code == 422

    async def test_register_duplicate_email(self, client, make_user):
        await make_user(email="taken@example.com")

        response = await client.post("/auth/register", json=register_body(email="taken@example.com"))

        assert response.status_code == 400
        assert response.json()["detail"] == "Email already registered"

    async def test_register_accepts_snake_case_body(self, client):
        body = {"email": "snake@example.com", "password": "Password123", "first_name": "S", "last_name": "C"}
        response = await client.post("/auth/register", json=body)
        assert response.status_code == 201


class TestLogin:
    async def test_login_tokens_round_trip(self, client, make_user):
        user = await make_user(email="login@example.com", role=UserRole.INSTRUCTOR)

        response = await client.post("/auth/login", json={"email": "login@example.com", "password": DEFAULT_PASSWORD})

        assert response.status_code == 200
        data = response.json()
        access = verify_access_token(data["accessToken"])
        refresh = verify_refresh_token(data["refreshToken"])
        assert subject_id(access) == subject_id(refresh) == user.id
        assert access["role"] == refresh["role"] == "INSTRUCTOR"
        assert data["user"]["id"] == str(user.id)

    async def test_login_is_case_insensitive_on_email(self, client, make_user):
        await make_user(email="mixed@example.com")

        response = await client.post("/auth/login", json={"email": "MIXED@example.com", "password": DEFAULT_PASSWORD})

        assert response.status_code == 200

    async def test_wrong_password_and_unknown_email_look_the_same(self, client, make_user):
        await make_user(email="known@example.com")

        wrong_password = await client.post("/auth/login", json={"email": "known@example.com", "password": "Nope12345"})
        unknown_email = await client.post("/auth/login", json={"email": "ghost@example.com", "password": "Nope12345"})

        assert wrong_password.status_code == unknown_email.status_code == 401
        assert wrong_password.json() == unknown_email.json() == {"detail": "Invalid email or password"}

    async def test_inactive_user_cannot_login(self, client, make_user):
        await make_user(email="gone@example.com", is_active=False)

        response = await client.post("/auth/login", json={"email": "gone@example.com", "password": DEFAULT_PASSWORD})

        assert response.status_code == 401

    async def test_google_only_account_cannot_password_login(self, client, make_user):
        await make_user(email="google@example.com", password=None, google_id="g-1")

        response = await client.post("/auth/login", json={"email": "google@example.com", "password": DEFAULT_PASSWORD})

        assert response.status_code == 401


class TestRefresh:
    async def test_refresh_issues_new_pair(self, client, make_user):
        user = await make_user()

        response = await client.post("/auth/refresh", json={"refreshToken": create_refresh_token(user)})

        assert response.status_code == 200
        data = response.json()
        assert subject_id(verify_access_token(data["accessToken"])) == user.id
        assert subject_id(verify_refresh_token(data["refreshToken"])) == user.id

    async def test_refresh_carries_current_role(self, client, make_user, session_factory):
        user = await make_user()
        token = create_refresh_token(user)
        async with session_factory() as session:
            db_user = await session.get(User, user.id)
            db_user.role = UserRole.INSTRUCTOR
            await session.commit()

        response = await client.post("/auth/refresh", json={"refreshToken": token})

        assert verify_access_token(response.json()["accessToken"])["role"] == "INSTRUCTOR"

    async def test_access_token_rejected_for_refresh(self, client, make_user):
        user = await make_user()
        access = auth_headers(user)["Authorization"].split(" ", 1)[1]

        response = await client.post("/auth/refresh", json={"refreshToken": access})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token type"

    async def test_refresh_for_missing_user(self, client, make_user, session_factory):
        user = await make_user()
        token = create_refresh_token(user)
        async with session_factory() as session:
            await session.delete(await session.get(User, user.id))
            await session.commit()

        response = await client.post("/auth/refresh", json={"refreshToken": token})

        assert response.status_code == 401
        assert response.json()["detail"] == "User not found"

    async def test_invalid_refresh_token(self, client):
        response = await client.post("/auth/refresh", json={"refreshToken": "garbage"})
        assert response.status_code == 401


class TestCurrentUser:
    async def test_me_requires_authentication(self, client):
        response = await client.get("/auth/me")
        assert response.status_code == 401

    async def test_refresh_token_rejected_as_bearer(self, client, make_user):
        user = await make_user()

        response = await client.get(
            "/auth/me", headers={"Authorization": f"Bearer {create_refresh_token(user)}"}
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token type"

    async def test_me_returns_profile_with_counts(self, client, make_user, make_course):
        instructor = await make_user(role=UserRole.INSTRUCTOR)
        await make_course(instructor)
        await make_course(instructor)

        response = await client.get("/auth/me", headers=auth_headers(instructor))

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == str(instructor.id)
        assert data["courseCount"] == 2
        assert data["enrollmentCount"] == 0

    async def test_deactivated_user_token_rejected(self, client, make_user, session_factory):
        user = await make_user()
        headers = auth_headers(user)
        async with session_factory() as session:
            db_user = await session.get(User, user.id)
            db_user.is_active = False
            await session.commit()

        response = await client.get("/auth/me", headers=headers)

        assert response.status_code == 401

    async def test_logout(self, client, make_user):
        user = await make_user()

        assert (await client.post("/auth/logout")).status_code == 401
        response = await client.post("/auth/logout", headers=auth_headers(user))

        assert response.status_code == 200
        assert response.json() == {"message": "Logged out successfully"}


class TestEmailVerification:
    @patch("marketplace.routes.auth_routes.send_verification_email")
    async def test_verify_email_with_emailed_token(self, mock_send, client, session_factory):
        await client.post("/auth/register", json=register_body())
        raw_token = mock_send.call_args.args[2]

        response = await client.post(f"/auth/verify-email/{raw_token}")

        assert response.status_code == 200
        user = await load_user(session_factory, "new.student@example.com")
        assert user.is_email_verified is True
        assert user.email_verification_token is None

        again = await client.post(f"/auth/verify-email/{raw_token}")
        assert again.status_code == 400

    async def test_expired_verification_token(self, client, make_user):
        await make_user(
            verified=False,
            email_verification_token=hash_token("expired-token"),
            email_verification_expires=utcnow() - timedelta(minutes=1),
        )

        response = await client.post("/auth/verify-email/expired-token")

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid or expired verification token"

    @patch("marketplace.routes.account_routes.send_verification_email")
    async def test_resend_verification(self, mock_send, client, make_user, session_factory):
        user = await make_user(verified=False)

        response = await client.post("/auth/resend-verification", json={"email": user.email})

        assert response.status_code == 200
        raw_token = mock_send.call_args.args[2]
        assert (await load_user(session_factory, user.email)).email_verification_token == hash_token(raw_token)

    async def test_resend_verification_when_already_verified(self, client, make_user):
        user = await make_user(verified=True)

        response = await client.post("/auth/resend-verification", json={"email": user.email})

        assert response.status_code == 400

    @patch("marketplace.routes.account_routes.send_verification_email")
    async def test_resend_verification_unknown_email(self, mock_send, client):
        response = await client.post("/auth/resend-verification", json={"email": "ghost@example.com"})

        assert response.status_code == 200
        mock_send.assert_not_called()


class TestPasswordReset:
    @patch("marketplace.routes.account_routes.send_reset_password_email")
    async def test_forgot_and_reset_password(self, mock_send, client, make_user):
        user = await make_user(email="forgetful@example.com")

        response = await client.post("/auth/forgot-password", json={"email": user.email})
        assert response.status_code == 200
        raw_token = mock_send.call_args.args[2]

        reset = await client.post("/auth/reset-password", json={"token": raw_token, "newPassword": "NewPassword456"})
        assert reset.status_code == 200

        old_login = await client.post("/auth/login", json={"email": user.email, "password": DEFAULT_PASSWORD})
        new_login = await client.post("/auth/login", json={"email": user.email, "password": "NewPassword456"})
        assert old_login.status_code == 401
        assert new_login.status_code == 200

        reused = await client.post("/auth/reset-password", json={"token": raw_token, "newPassword": "Another789x"})
        assert reused.status_code == 400

    @patch("marketplace.routes.account_routes.send_reset_password_email")
    async def test_forgot_password_unknown_email(self, mock_send, client):
        response = await client.post("/auth/forgot-password", json={"email": "ghost@example.com"})

        assert response.status_code == 200
        assert "reset link has been sent" in response.json()["message"]
        mock_send.assert_not_called()

    async def test_reset_with_bad_token(self, client):
        response = await client.post("/auth/reset-password", json={"token": "nope", "newPassword": "NewPassword456"})
        assert response.status_code == 400

    async def test_change_password(self, client, make_user):
        user = await make_user()
        headers = auth_headers(user)

        wrong = await client.post(
            "/auth/change-password",
            json={"currentPassword": "Wrong12345", "newPassword": "NewPassword456"},
            headers=headers,
        )
        assert wrong.status_code == 400

        ok = await client.post(
            "/auth/change-password",
            json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "NewPassword456"},
            headers=headers,
        )
        assert ok.status_code == 200

        login = await client.post("/auth/login", json={"email": user.email, "password": "NewPassword456"})
        assert login.status_code == 200
