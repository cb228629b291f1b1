"""
Tests for the role-specific dashboard.
"""

from datetime import timedelta

from edb.coaching.models import CoachingSession
from edb.db.session import AsyncSessionLocal
from edb.utils.dates import utcnow


async def _session(user_id, coach_id):
    now = utcnow()
    async with AsyncSessionLocal() as db:
        db.add(CoachingSession(user_id=user_id, coach_id=coach_id, start_date=now,
                               end_date=now + timedelta(days=90), is_free=True, status="ACTIVE"))
        await db.commit()


class TestDashboard:
    """Dashboard content per role."""

    async def test_admin_dashboard(self, client, admin_headers, apprenant, coach):
        await client.post("/api/payments/manual", headers=admin_headers,
                          json={"user_id": apprenant.id, "amount": 5000})
        await _session(apprenant.id, coach.id)

        response = await client.get("/api/dashboard", headers=admin_headers)

        data = response.json()
        assert data["users"] == {"ADMIN": 1, "COACH": 1, "APPRENANT": 1}
        assert data["total_revenue"] == 5000.0
        assert data["active_sessions"] == 1
        assert data["recent_payments"][0]["user"]["id"] == apprenant.id

    async def test_coach_dashboard(self, client, coach, coach_headers, apprenant):
        await _session(apprenant.id, coach.id)

        response = await client.get("/api/dashboard", headers=coach_headers)

        data = response.json()
        assert data["total_students"] == 1
        assert data["active_sessions"][0]["user"]["email"] == apprenant.email
        assert data["cohorts"] == []

    async def test_apprenant_dashboard(self, client, admin_headers, apprenant, apprenant_headers, coach):
        cohort = await client.post("/api/cohorts", headers=admin_headers, json={
            "name": "Cohorte Dashboard",
            "start_date": "2026-01-10T09:00:00",
        })
        await client.post(f"/api/cohorts/{cohort.json()['id']}/members", headers=admin_headers,
                          json={"user_id": apprenant.id})

        response = await client.get("/api/dashboard", headers=apprenant_headers)

        data = response.json()
        assert data["cohorts"][0]["cohort"]["name"] == "Cohorte Dashboard"
        assert data["active_coaching"]["is_free"] is True
        assert data["active_coaching"]["coach"] is None
        assert data["current_subscription"] is None
        assert data["average_progress"] == 0
