"""
Tests for cohorts, memberships and the free coaching granted on enrolment.
"""

from datetime import timedelta

from sqlalchemy import select

from edb.coaching.models import CoachingSession
from edb.config import settings
from edb.db.session import AsyncSessionLocal
from edb.notifications.models import Notification
from edb.notifications.queue import notification_queue
from edb.utils.dates import utcnow
from tests.conftest import create_user


async def _create_cohort(client, headers, data):
    response = await client.post("/api/cohorts", headers=headers, json=data)
    assert response.status_code == 201
    return response.json()


class TestCohortCrud:
    """Creation, listing, update and deletion of cohorts."""

    async def test_create_cohort_starts_as_draft(self, client, admin_headers, sample_cohort_data):
        cohort = await _create_cohort(client, admin_headers, sample_cohort_data)

        assert cohort["status"] == "DRAFT"
        assert cohort["members_count"] == 0
        assert cohort["is_full"] is False

    async def test_create_rejects_inverted_dates(self, client, admin_headers, sample_cohort_data):
        data = {**sample_cohort_data, "end_date": "2025-12-01T00:00:00"}
        response = await client.post("/api/cohorts", headers=admin_headers, json=data)
        assert response.status_code == 422

    async def test_create_requires_admin(self, client, coach_headers, sample_cohort_data):
        response = await client.post("/api/cohorts", headers=coach_headers, json=sample_cohort_data)
        assert response.status_code == 403

    async def test_list_filters_by_status(self, client, admin_headers, sample_cohort_data):
        cohort = await _create_cohort(client, admin_headers, sample_cohort_data)
        await _create_cohort(client, admin_headers, {**sample_cohort_data, "name": "Cohorte Forex"})
        await client.put(f"/api/cohorts/{cohort['id']}", headers=admin_headers, json={"status": "ACTIVE"})

        response = await client.get("/api/cohorts", headers=admin_headers, params={"status": "ACTIVE"})

        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == [cohort["id"]]

    async def test_update_checks_dates(self, client, admin_headers, sample_cohort_data):
        cohort = await _create_cohort(client, admin_headers, sample_cohort_data)

        response = await client.put(f"/api/cohorts/{cohort['id']}", headers=admin_headers,
                                    json={"start_date": "2026-06-01T00:00:00"})

        assert response.status_code == 400

    async def test_get_unknown_cohort(self, client, admin_headers):
        response = await client.get("/api/cohorts/404", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["detail"] == "Cohorte introuvable"

    async def test_delete_cohort(self, client, admin_headers, sample_cohort_data):
        cohort = await _create_cohort(client, admin_headers, sample_cohort_data)

        response = await client.delete(f"/api/cohorts/{cohort['id']}", headers=admin_headers)
        assert response.status_code == 200

        response = await client.get(f"/api/cohorts/{cohort['id']}", headers=admin_headers)
        assert response.status_code == 404

    async def test_stats(self, client, admin_headers, sample_cohort_data):
        cohort = await _create_cohort(client, admin_headers, sample_cohort_data)
        await _create_cohort(client, admin_headers, {**sample_cohort_data, "name": "Cohorte Crypto"})
        await client.put(f"/api/cohorts/{cohort['id']}", headers=admin_headers, json={"status": "COMPLETED"})

        response = await client.get("/api/cohorts/stats", headers=admin_headers)

        assert response.json() == {"total": 2, "active": 0, "completed": 1, "draft": 1}


class TestMembership:
    """Adding and removing members."""

    async def test_add_member_grants_free_coaching(self, client, admin_headers, apprenant, sample_cohort_data):
        cohort = await _create_cohort(client, admin_headers, sample_cohort_data)
        before = utcnow()

        response = await client.post(f"/api/cohorts/{cohort['id']}/members", headers=admin_headers,
                                     json={"user_id": apprenant.id})

        assert response.status_code == 201
        member = response.json()
        assert member["user_id"] == apprenant.id
        assert member["progress"] == 0
        assert member["user"]["email"] == apprenant.email

        async with AsyncSessionLocal() as db:
            result = await db.execute(select(CoachingSession).where(CoachingSession.user_id == apprenant.id))
            session = result.scalars().one()
        assert session.is_free is True
        assert session.status == "ACTIVE"
        assert session.cohort_id == cohort["id"]
        months = settings.FREE_COACHING_DURATION_MONTHS
        assert before + timedelta(days=28 * months) <= session.end_date <= before + timedelta(days=31 * months + 1)

    async def test_add_member_sends_welcome_email(self, client, admin_headers, apprenant, sample_cohort_data):
        cohort = await _create_cohort(client, admin_headers, sample_cohort_data)
        await client.post(f"/api/cohorts/{cohort['id']}/members", headers=admin_headers,
                          json={"user_id": apprenant.id})

        assert notification_queue.pending == 1
        await notification_queue.drain()

        async with AsyncSessionLocal() as db:
            result = await db.execute(select(Notification).where(Notification.user_id == apprenant.id))
            notification = result.scalars().one()
        assert notification.type == "EMAIL"
        assert notification.status == "SENT"
        assert sample_cohort_data["name"] in notification.message

    async def test_add_member_twice(self, client, admin_headers, apprenant, sample_cohort_data):
        cohort = await _create_cohort(client, admin_headers, sample_cohort_data)
        url = f"/api/cohorts/{cohort['id']}/members"
        await client.post(url, headers=admin_headers, json={"user_id": apprenant.id})

        response = await client.post(url, headers=admin_headers, json={"user_id": apprenant.id})
        assert response.status_code == 400

    async def test_cohort_full(self, client, admin_headers, sample_cohort_data):
        cohort = await _create_cohort(client, admin_headers, sample_cohort_data)
        url = f"/api/cohorts/{cohort['id']}/members"
        for i in range(sample_cohort_data["max_students"]):
            user = await create_user(f"eleve{i}@example.com")
            assert (await client.post(url, headers=admin_headers, json={"user_id": user.id})).status_code == 201

        extra = await create_user("retardataire@example.com")
        response = await client.post(url, headers=admin_headers, json={"user_id": extra.id})

        assert response.status_code == 400
        assert response.json()["detail"] == "La cohorte est complète"

        detail = (await client.get(f"/api/cohorts/{cohort['id']}", headers=admin_headers)).json()
        assert detail["is_full"] is True
        assert detail["members_count"] == 2
        assert len(detail["sessions"]) == 2

    async def test_add_unknown_user(self, client, admin_headers, sample_cohort_data):
        cohort = await _create_cohort(client, admin_headers, sample_cohort_data)
        response = await client.post(f"/api/cohorts/{cohort['id']}/members", headers=admin_headers,
                                     json={"user_id": 999})
        assert response.status_code == 404

    async def test_remove_member(self, client, admin_headers, apprenant, sample_cohort_data):
        cohort = await _create_cohort(client, admin_headers, sample_cohort_data)
        await client.post(f"/api/cohorts/{cohort['id']}/members", headers=admin_headers,
                          json={"user_id": apprenant.id})

        response = await client.delete(f"/api/cohorts/{cohort['id']}/members/{apprenant.id}",
                                       headers=admin_headers)
        assert response.status_code == 200

        response = await client.delete(f"/api/cohorts/{cohort['id']}/members/{apprenant.id}",
                                       headers=admin_headers)
        assert response.status_code == 404

    async def test_progress_is_clamped(self, client, admin_headers, coach_headers, apprenant, sample_cohort_data):
        cohort = await _create_cohort(client, admin_headers, sample_cohort_data)
        await client.post(f"/api/cohorts/{cohort['id']}/members", headers=admin_headers,
                          json={"user_id": apprenant.id})
        url = f"/api/cohorts/{cohort['id']}/members/{apprenant.id}/progress"

        response = await client.put(url, headers=coach_headers, json={"progress": 150})
        assert response.status_code == 200
        assert response.json()["progress"] == 100

        response = await client.put(url, headers=coach_headers, json={"progress": -5})
        assert response.json()["progress"] == 0

    async def test_my_cohorts(self, client, admin_headers, apprenant, apprenant_headers, sample_cohort_data):
        cohort = await _create_cohort(client, admin_headers, sample_cohort_data)
        await _create_cohort(client, admin_headers, {**sample_cohort_data, "name": "Autre cohorte"})
        await client.post(f"/api/cohorts/{cohort['id']}/members", headers=admin_headers,
                          json={"user_id": apprenant.id})

        response = await client.get("/api/cohorts/my-cohorts", headers=apprenant_headers)

        assert [c["id"] for c in response.json()] == [cohort["id"]]

    async def test_attendance_updates_membership(self, client, admin_headers, coach_headers, apprenant,
                                                 sample_cohort_data):
        cohort = await _create_cohort(client, admin_headers, sample_cohort_data)
        await client.post(f"/api/cohorts/{cohort['id']}/members", headers=admin_headers,
                          json={"user_id": apprenant.id})

        await client.post(f"/api/users/{apprenant.id}/attendance", headers=coach_headers, json={"present": True})
        response = await client.post(f"/api/users/{apprenant.id}/attendance", headers=coach_headers,
                                     json={"present": False, "cohort_id": cohort["id"]})

        assert response.status_code == 200
        assert response.json()["memberships"] == [
            {"cohort_id": cohort["id"], "attendance_count": 1, "absence_count": 1}
        ]
