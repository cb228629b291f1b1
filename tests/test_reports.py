"""
Tests for admin reports, exports and the audit log.
"""

import io
import json
from datetime import timedelta

import openpyxl

from edb.cohorts.models import Cohort, CohortMember
from edb.db.session import AsyncSessionLocal
from edb.subscriptions.models import Subscription, SubscriptionStatus
from edb.utils.dates import utcnow
from tests.conftest import create_user


async def _manual_payment(client, headers, user_id, amount, **extra):
    response = await client.post("/api/payments/manual", headers=headers,
                                 json={"user_id": user_id, "amount": amount, **extra})
    assert response.status_code == 201
    return response.json()


async def _cohort_with_members(*user_ids):
    now = utcnow()
    async with AsyncSessionLocal() as db:
        cohort = Cohort(name="Cohorte BRVM", start_date=now, end_date=now + timedelta(days=60))
        db.add(cohort)
        await db.flush()
        for user_id in user_ids:
            db.add(CohortMember(cohort_id=cohort.id, user_id=user_id))
        await db.commit()
        return cohort.id


async def _subscription(user_id, status):
    now = utcnow()
    async with AsyncSessionLocal() as db:
        db.add(Subscription(user_id=user_id, type="MONTHLY", price=5000, start_date=now,
                            end_date=now + timedelta(days=30), status=status.value))
        await db.commit()


class TestReports:
    """JSON reports."""

    async def test_overview(self, client, admin_headers, apprenant):
        await _manual_payment(client, admin_headers, apprenant.id, 5000)
        await _subscription(apprenant.id, SubscriptionStatus.ACTIVE)

        response = await client.get("/api/reports/overview", headers=admin_headers)

        assert response.json() == {
            "total_users": 2,
            "total_cohorts": 0,
            "total_subscriptions": 1,
            "total_revenue": 5000.0,
            "active_coaching": 0,
        }

    async def test_users_report(self, client, admin_headers, apprenant, coach):
        response = await client.get("/api/reports/users", headers=admin_headers)

        data = response.json()
        assert data["by_role"] == {"ADMIN": 1, "APPRENANT": 1, "COACH": 1}
        assert data["by_status"] == {"ACTIVE": 3}
        assert len(data["recent_users"]) == 3

    async def test_revenue_report_counts_completed_only(self, client, admin_headers, apprenant):
        await _manual_payment(client, admin_headers, apprenant.id, 5000)
        await _manual_payment(client, admin_headers, apprenant.id, 13500, method="BANK_TRANSFER")
        await _manual_payment(client, admin_headers, apprenant.id, 900, status="PENDING")

        response = await client.get("/api/reports/revenue", headers=admin_headers)

        data = response.json()
        assert data["total"] == 18500.0
        assert data["count"] == 2

    async def test_revenue_report_date_range(self, client, admin_headers, apprenant):
        await _manual_payment(client, admin_headers, apprenant.id, 5000)

        response = await client.get("/api/reports/revenue", headers=admin_headers,
                                    params={"startDate": "2000-01-01T00:00:00", "endDate": "2000-12-31T00:00:00"})
        assert response.json()["count"] == 0

        response = await client.get("/api/reports/revenue", headers=admin_headers,
                                    params={"startDate": "2030-01-01T00:00:00", "endDate": "2000-01-01T00:00:00"})
        assert response.status_code == 400

    async def test_revenue_mixed_timezones(self, client, admin_headers, apprenant):
        await _manual_payment(client, admin_headers, apprenant.id, 5000)

        response = await client.get("/api/reports/revenue", headers=admin_headers,
                                    params={"startDate": "2000-01-01T00:00:00Z", "endDate": "2100-01-01T00:00:00"})
        assert response.status_code == 200
        assert response.json()["count"] == 1

        response = await client.get("/api/reports/revenue", headers=admin_headers,
                                    params={"startDate": "2100-01-01T00:00:00+02:00", "endDate": "2000-01-01T00:00:00"})
        assert response.status_code == 400

    async def test_cohorts_report(self, client, admin_headers, apprenant):
        cohort_id = await _cohort_with_members(apprenant.id)

        response = await client.get("/api/reports/cohorts", headers=admin_headers)

        [row] = response.json()
        assert row["id"] == cohort_id
        assert row["members_count"] == 1
        assert row["sessions_count"] == 0

    async def test_conversion_report(self, client, admin_headers, apprenant):
        other = await create_user("autre@example.com")
        third = await create_user("troisieme@example.com")
        await _cohort_with_members(apprenant.id, other.id, third.id)
        await _subscription(apprenant.id, SubscriptionStatus.ACTIVE)
        await _subscription(other.id, SubscriptionStatus.PENDING_PAYMENT)

        response = await client.get("/api/reports/conversion", headers=admin_headers)

        [row] = response.json()
        assert row["members"] == 3
        assert row["paid_members"] == 1
        assert row["conversion_rate"] == 33.33

    async def test_reports_require_admin(self, client, coach_headers):
        response = await client.get("/api/reports/users", headers=coach_headers)
        assert response.status_code == 403


class TestExports:
    """Downloadable exports."""

    async def test_csv_export_has_bom_and_header(self, client, admin_headers, apprenant):
        response = await client.get("/api/reports/export/users", headers=admin_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert 'filename="rapport_users_' in response.headers["content-disposition"]
        assert response.content.startswith("\ufeff".encode("utf-8"))
        lines = response.content.decode("utf-8-sig").splitlines()
        assert lines[0] == "id,email,first_name,last_name,phone,role,status,created_at,last_login_at"
        assert len(lines) == 3

    async def test_excel_export(self, client, admin_headers, apprenant):
        await _manual_payment(client, admin_headers, apprenant.id, 5000)

        response = await client.get("/api/reports/export/payments", headers=admin_headers,
                                    params={"format": "excel"})

        assert response.status_code == 200
        assert response.headers["content-disposition"].endswith('.xlsx"')
        sheet = openpyxl.load_workbook(io.BytesIO(response.content)).active
        assert sheet.title == "payments"
        assert sheet["A1"].value == "id"
        assert sheet["A1"].font.bold
        assert sheet.max_row == 2

    async def test_json_export(self, client, admin_headers, apprenant):
        await _manual_payment(client, admin_headers, apprenant.id, 5000)

        response = await client.get("/api/reports/export/revenue", headers=admin_headers,
                                    params={"format": "json"})

        rows = json.loads(response.content)
        assert rows[0]["amount"] == 5000
        assert rows[0]["user_email"] == apprenant.email

    async def test_unknown_report_type(self, client, admin_headers):
        response = await client.get("/api/reports/export/inconnu", headers=admin_headers)
        assert response.status_code == 400

    async def test_unknown_format(self, client, admin_headers):
        response = await client.get("/api/reports/export/users", headers=admin_headers, params={"format": "pdf"})
        assert response.status_code == 400


class TestAuditLog:
    """Audit log listing."""

    async def test_audit_logs_filtered_by_action(self, client, admin, admin_headers, apprenant):
        await client.put(f"/api/users/{apprenant.id}/status", headers=admin_headers, json={"status": "INACTIVE"})
        await client.put(f"/api/users/{apprenant.id}", headers=admin_headers, json={"bio": "Mise à jour"})

        response = await client.get("/api/audit-logs", headers=admin_headers, params={"action": "STATUS_CHANGE"})

        [entry] = response.json()
        assert entry["user_id"] == admin.id
        assert entry["changes"] == {"from": "ACTIVE", "to": "INACTIVE"}

    async def test_audit_logs_require_admin(self, client, apprenant_headers):
        response = await client.get("/api/audit-logs", headers=apprenant_headers)
        assert response.status_code == 403
