"""
Tests for user management and self-service profile routes.
"""

from pathlib import Path

from sqlalchemy import select

from edb.audit.models import AuditLog
from edb.auth.models import User, UserRole, UserStatus
from edb.config import settings
from edb.db.session import AsyncSessionLocal
from tests.conftest import PASSWORD, create_user


class TestUserAdministration:
    """Admin-only management of accounts."""

    async def test_admin_creates_active_user(self, client, admin_headers):
        response = await client.post("/api/users", headers=admin_headers, json={
            "email": "Coach2@example.com",
            "password": "Password1",
            "first_name": "Ibrahim",
            "last_name": "Keita",
            "role": "COACH",
        })

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "coach2@example.com"
        assert data["role"] == "COACH"
        assert data["status"] == "ACTIVE"

    async def test_create_duplicate_email(self, client, admin_headers, apprenant):
        response = await client.post("/api/users", headers=admin_headers, json={
            "email": apprenant.email,
            "password": "Password1",
            "first_name": "Double",
            "last_name": "Compte",
        })
        assert response.status_code == 409

    async def test_apprenant_cannot_create_user(self, client, apprenant_headers):
        response = await client.post("/api/users", headers=apprenant_headers, json={
            "email": "x@example.com",
            "password": "Password1",
            "first_name": "Non",
            "last_name": "Autorise",
        })
        assert response.status_code == 403

    async def test_list_filters_by_role(self, client, admin_headers, coach, apprenant):
        response = await client.get("/api/users", headers=admin_headers, params={"role": "COACH"})

        assert response.status_code == 200
        emails = [u["email"] for u in response.json()]
        assert emails == [coach.email]

    async def test_list_forbidden_for_apprenant(self, client, apprenant_headers):
        response = await client.get("/api/users", headers=apprenant_headers)
        assert response.status_code == 403

    async def test_get_unknown_user(self, client, admin_headers):
        response = await client.get("/api/users/9999", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["detail"] == "Utilisateur introuvable"

    async def test_apprenant_cannot_read_other_user(self, client, apprenant_headers, coach):
        response = await client.get(f"/api/users/{coach.id}", headers=apprenant_headers)
        assert response.status_code == 403

    async def test_update_status_is_audited(self, client, admin, admin_headers, apprenant):
        response = await client.put(f"/api/users/{apprenant.id}/status", headers=admin_headers,
                                    json={"status": "SUSPENDED"})

        assert response.status_code == 200
        assert response.json()["status"] == "SUSPENDED"

        async with AsyncSessionLocal() as db:
            result = await db.execute(select(AuditLog).where(AuditLog.action == "STATUS_CHANGE"))
            entry = result.scalars().one()
            assert entry.user_id == admin.id
            assert entry.entity_id == str(apprenant.id)

    async def test_suspended_user_token_rejected(self, client, admin_headers, apprenant, apprenant_headers):
        await client.put(f"/api/users/{apprenant.id}/status", headers=admin_headers, json={"status": "SUSPENDED"})

        response = await client.get("/api/users/me", headers=apprenant_headers)
        assert response.status_code == 401

    async def test_admin_cannot_delete_self(self, client, admin, admin_headers):
        response = await client.delete(f"/api/users/{admin.id}", headers=admin_headers)
        assert response.status_code == 400

    async def test_delete_user(self, client, admin_headers, apprenant):
        response = await client.delete(f"/api/users/{apprenant.id}", headers=admin_headers)
        assert response.status_code == 200

        async with AsyncSessionLocal() as db:
            assert await db.get(User, apprenant.id) is None

    async def test_staff_notes(self, client, coach_headers, apprenant):
        response = await client.put(f"/api/users/{apprenant.id}/notes", headers=coach_headers,
                                    json={"notes": "Très assidu"})

        assert response.status_code == 200
        assert response.json()["notes"] == "Très assidu"


class TestProfile:
    """Routes acting on the authenticated user."""

    async def test_get_me(self, client, apprenant, apprenant_headers):
        response = await client.get("/api/users/me", headers=apprenant_headers)
        assert response.status_code == 200
        assert response.json()["id"] == apprenant.id

    async def test_update_me_ignores_admin_fields(self, client, apprenant_headers):
        response = await client.put("/api/users/me", headers=apprenant_headers,
                                    json={"first_name": "Modou", "bio": "Investisseur débutant"})

        assert response.status_code == 200
        data = response.json()
        assert data["first_name"] == "Modou"
        assert data["bio"] == "Investisseur débutant"
        assert data["role"] == "APPRENANT"

    async def test_user_cannot_escalate_role(self, client, apprenant, apprenant_headers):
        response = await client.put(f"/api/users/{apprenant.id}", headers=apprenant_headers,
                                    json={"role": "ADMIN", "last_name": "Nouveau"})

        assert response.status_code == 200
        assert response.json()["role"] == "APPRENANT"
        assert response.json()["last_name"] == "Nouveau"

    async def test_password_not_changed_through_profile_update(self, client, apprenant, apprenant_headers):
        response = await client.put(f"/api/users/{apprenant.id}", headers=apprenant_headers,
                                    json={"password": "Remplace123!"})
        assert response.status_code == 200

        old = await client.post("/api/auth/login", json={"email": apprenant.email, "password": PASSWORD})
        new = await client.post("/api/auth/login", json={"email": apprenant.email, "password": "Remplace123!"})
        assert old.status_code == 200
        assert new.status_code == 401

    async def test_admin_resets_password(self, client, admin_headers, apprenant):
        response = await client.put(f"/api/users/{apprenant.id}", headers=admin_headers,
                                    json={"password": "Remplace123!"})
        assert response.status_code == 200

        login = await client.post("/api/auth/login", json={"email": apprenant.email, "password": "Remplace123!"})
        assert login.status_code == 200

    async def test_user_cannot_update_other_profile(self, client, apprenant_headers, coach):
        response = await client.put(f"/api/users/{coach.id}", headers=apprenant_headers,
                                    json={"first_name": "Pirate"})
        assert response.status_code == 403

    async def test_email_conflict_on_update(self, client, apprenant_headers, coach):
        response = await client.put("/api/users/me", headers=apprenant_headers, json={"email": coach.email})
        assert response.status_code == 409

    async def test_change_password(self, client, apprenant, apprenant_headers):
        response = await client.put("/api/users/me/password", headers=apprenant_headers, json={
            "current_password": PASSWORD,
            "new_password": "Nouveau123",
        })
        assert response.status_code == 200

        login = await client.post("/api/auth/login", json={"email": apprenant.email, "password": "Nouveau123"})
        assert login.status_code == 200

    async def test_change_password_wrong_current(self, client, apprenant_headers):
        response = await client.put("/api/users/me/password", headers=apprenant_headers, json={
            "current_password": "Incorrect1",
            "new_password": "Nouveau123",
        })
        assert response.status_code == 400
        assert response.json()["detail"] == "Mot de passe actuel incorrect"

    async def test_notification_settings(self, client, apprenant_headers):
        response = await client.put("/api/users/me/notifications", headers=apprenant_headers,
                                    json={"sms_notifications": False})

        assert response.status_code == 200
        data = response.json()
        assert data["sms_notifications"] is False
        assert data["email_notifications"] is True

    async def test_upload_avatar(self, client, apprenant_headers):
        response = await client.post(
            "/api/users/me/avatar",
            headers=apprenant_headers,
            files={"file": ("photo.png", b"\x89PNG\r\n\x1a\n", "image/png")},
        )

        assert response.status_code == 200
        avatar = response.json()["avatar"]
        assert avatar.startswith("/static/upload/profileImage/avatar_")
        assert (Path(settings.UPLOAD_PATH) / "profileImage" / avatar.rsplit("/", 1)[-1]).exists()

    async def test_upload_avatar_rejects_extension(self, client, apprenant_headers):
        response = await client.post(
            "/api/users/me/avatar",
            headers=apprenant_headers,
            files={"file": ("script.sh", b"echo", "text/plain")},
        )
        assert response.status_code == 400


class TestDirectories:
    """Coach listings and per-role statistics."""

    async def test_coaches_lists_active_coaches(self, client, apprenant_headers, coach):
        await create_user("ancien.coach@example.com", UserRole.COACH, status=UserStatus.INACTIVE)

        response = await client.get("/api/users/coaches", headers=apprenant_headers)

        assert response.status_code == 200
        assert [u["id"] for u in response.json()] == [coach.id]

    async def test_my_students_requires_coach(self, client, apprenant_headers):
        response = await client.get("/api/users/my-students", headers=apprenant_headers)
        assert response.status_code == 403

    async def test_apprenant_stats_empty(self, client, apprenant_headers):
        response = await client.get("/api/users/me/stats", headers=apprenant_headers)

        assert response.status_code == 200
        assert response.json() == {"cohorts_count": 0, "active_coaching": 0, "subscriptions": []}

    async def test_attendance_without_membership(self, client, coach_headers, apprenant):
        response = await client.post(f"/api/users/{apprenant.id}/attendance", headers=coach_headers,
                                     json={"present": True})
        assert response.status_code == 404
