"""
Tests for subscription plans and the subscription lifecycle.
"""

from datetime import datetime, timedelta

from edb.db.session import AsyncSessionLocal
from edb.subscriptions.models import Subscription, SubscriptionStatus, SubscriptionType
from edb.subscriptions.services import SubscriptionService
from edb.utils.dates import add_months, utcnow


async def _create_plan(client, headers, **overrides):
    data = {"name": "Mensuel", "type": "MONTHLY", "price": 5000, "features": ["Replays"]}
    data.update(overrides)
    response = await client.post("/api/subscription-plans", headers=headers, json=data)
    assert response.status_code == 201
    return response.json()


async def _add_subscription(user_id, days_left, status=SubscriptionStatus.ACTIVE, auto_renew=False,
                            type=SubscriptionType.MONTHLY, price=5000):
    now = utcnow()
    async with AsyncSessionLocal() as db:
        subscription = Subscription(
            user_id=user_id,
            type=type.value,
            price=price,
            start_date=now - timedelta(days=30),
            end_date=now + timedelta(days=days_left),
            status=status.value,
            auto_renew=auto_renew,
        )
        db.add(subscription)
        await db.commit()
        return subscription.id


class TestPlans:
    """Subscription plan catalogue."""

    async def test_create_plan_defaults_duration(self, client, admin_headers):
        plan = await _create_plan(client, admin_headers, name="Trimestriel", type="QUARTERLY", price=13500)

        assert plan["duration_months"] == 3
        assert plan["currency"] == "XOF"
        assert plan["features"] == ["Replays"]
        assert plan["is_active"] is True

    async def test_duplicate_plan_name(self, client, admin_headers):
        await _create_plan(client, admin_headers)
        response = await client.post("/api/subscription-plans", headers=admin_headers,
                                     json={"name": "Mensuel", "type": "MONTHLY", "price": 6000})
        assert response.status_code == 409

    async def test_inactive_plans_hidden_from_learners(self, client, admin_headers, apprenant_headers):
        plan = await _create_plan(client, admin_headers)
        await _create_plan(client, admin_headers, name="Annuel", type="YEARLY", price=48000)
        response = await client.patch(f"/api/subscription-plans/{plan['id']}/toggle-active", headers=admin_headers)
        assert response.json()["is_active"] is False

        learner_view = await client.get("/api/subscription-plans", headers=apprenant_headers)
        admin_view = await client.get("/api/subscription-plans", headers=admin_headers)

        assert [p["name"] for p in learner_view.json()] == ["Annuel"]
        assert len(admin_view.json()) == 2

    async def test_update_plan_features(self, client, admin_headers):
        plan = await _create_plan(client, admin_headers)

        response = await client.put(f"/api/subscription-plans/{plan['id']}", headers=admin_headers,
                                    json={"price": 5500, "features": ["Replays", "Support"]})

        assert response.status_code == 200
        assert response.json()["price"] == 5500
        assert response.json()["features"] == ["Replays", "Support"]

    async def test_plan_in_use_cannot_be_deleted(self, client, admin_headers, apprenant_headers):
        plan = await _create_plan(client, admin_headers)
        await client.post("/api/subscriptions", headers=apprenant_headers, json={"plan_id": plan["id"]})

        response = await client.delete(f"/api/subscription-plans/{plan['id']}", headers=admin_headers)
        assert response.status_code == 409

    async def test_plan_stats_monthly_revenue(self, client, admin_headers, apprenant):
        await _create_plan(client, admin_headers)
        await _add_subscription(apprenant.id, 20, type=SubscriptionType.MONTHLY, price=5000)
        await _add_subscription(apprenant.id, 200, type=SubscriptionType.YEARLY, price=48000)

        response = await client.get("/api/subscription-plans/stats", headers=admin_headers)

        assert response.json() == {
            "total_plans": 1,
            "active_plans": 1,
            "total_subscribers": 1,
            "monthly_revenue": 9000.0,
        }


class TestSubscriptionLifecycle:
    """Creation, cancellation, activation and renewal."""

    async def test_learner_subscription_waits_for_payment(self, client, admin_headers, apprenant, apprenant_headers):
        plan = await _create_plan(client, admin_headers, name="Trimestriel", type="QUARTERLY", price=13500)

        response = await client.post("/api/subscriptions", headers=apprenant_headers,
                                     json={"plan_id": plan["id"], "price": 1})

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "PENDING_PAYMENT"
        assert data["user_id"] == apprenant.id
        assert data["type"] == "QUARTERLY"
        # Le prix du plan s'impose à un apprenant
        assert data["price"] == 13500
        assert data["plan"]["name"] == "Trimestriel"

    async def test_admin_subscription_is_active(self, client, admin_headers, apprenant):
        response = await client.post("/api/subscriptions", headers=admin_headers, json={
            "user_id": apprenant.id,
            "type": "YEARLY",
            "price": 40000,
        })

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "ACTIVE"
        assert data["user_id"] == apprenant.id
        assert data["price"] == 40000

    async def test_inactive_plan_refused_for_learner(self, client, admin_headers, apprenant_headers):
        plan = await _create_plan(client, admin_headers)
        await client.patch(f"/api/subscription-plans/{plan['id']}/toggle-active", headers=admin_headers)

        response = await client.post("/api/subscriptions", headers=apprenant_headers, json={"plan_id": plan["id"]})
        assert response.status_code == 400

    async def test_plan_or_type_required(self, client, apprenant_headers):
        response = await client.post("/api/subscriptions", headers=apprenant_headers, json={"type": "MONTHLY"})
        assert response.status_code == 422

    async def test_learner_only_lists_own(self, client, apprenant, apprenant_headers, coach):
        own = await _add_subscription(apprenant.id, 20)
        await _add_subscription(coach.id, 20)

        response = await client.get("/api/subscriptions", headers=apprenant_headers)
        assert [s["id"] for s in response.json()] == [own]

    async def test_cannot_read_other_subscription(self, client, apprenant_headers, coach):
        other = await _add_subscription(coach.id, 20)
        response = await client.get(f"/api/subscriptions/{other}", headers=apprenant_headers)
        assert response.status_code == 403

    async def test_cancel(self, client, apprenant, apprenant_headers):
        subscription_id = await _add_subscription(apprenant.id, 20, auto_renew=True)

        response = await client.put(f"/api/subscriptions/{subscription_id}/cancel", headers=apprenant_headers,
                                    json={"reason": "Trop cher"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "CANCELLED"
        assert data["cancellation_reason"] == "Trop cher"
        assert data["cancelled_at"] is not None
        assert data["auto_renew"] is False

        again = await client.put(f"/api/subscriptions/{subscription_id}/cancel", headers=apprenant_headers)
        assert again.status_code == 400

    async def test_renew_extends_one_period(self, client, apprenant, apprenant_headers):
        subscription_id = await _add_subscription(apprenant.id, 5, type=SubscriptionType.QUARTERLY)
        before = (await client.get(f"/api/subscriptions/{subscription_id}", headers=apprenant_headers)).json()

        response = await client.put(f"/api/subscriptions/{subscription_id}/renew", headers=apprenant_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "ACTIVE"
        assert response.json()["end_date"][:7] > before["end_date"][:7]

    async def test_cannot_renew_cancelled(self, client, apprenant, apprenant_headers):
        subscription_id = await _add_subscription(apprenant.id, 5, status=SubscriptionStatus.CANCELLED)

        response = await client.put(f"/api/subscriptions/{subscription_id}/renew", headers=apprenant_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Impossible de renouveler un abonnement annulé"

    async def test_learner_cannot_renew_unpaid_subscription(self, client, admin_headers, apprenant_headers):
        plan = await _create_plan(client, admin_headers)
        created = (await client.post("/api/subscriptions", headers=apprenant_headers,
                                     json={"plan_id": plan["id"]})).json()
        assert created["status"] == "PENDING_PAYMENT"

        response = await client.put(f"/api/subscriptions/{created['id']}/renew", headers=apprenant_headers)

        assert response.status_code == 400
        current = await client.get(f"/api/subscriptions/{created['id']}", headers=apprenant_headers)
        assert current.json()["status"] == "PENDING_PAYMENT"
        assert current.json()["end_date"] == created["end_date"]

    async def test_admin_renews_unpaid_subscription(self, client, admin_headers, apprenant):
        subscription_id = await _add_subscription(apprenant.id, 30, status=SubscriptionStatus.PENDING_PAYMENT)

        response = await client.put(f"/api/subscriptions/{subscription_id}/renew", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "ACTIVE"

    async def test_admin_activates(self, client, admin_headers, apprenant):
        subscription_id = await _add_subscription(apprenant.id, 30, status=SubscriptionStatus.PENDING_PAYMENT)

        response = await client.put(f"/api/subscriptions/{subscription_id}/activate", headers=admin_headers)
        assert response.json()["status"] == "ACTIVE"

    async def test_statistics(self, client, admin_headers, apprenant):
        await _add_subscription(apprenant.id, 20, type=SubscriptionType.MONTHLY, price=5000)
        await _add_subscription(apprenant.id, 80, type=SubscriptionType.QUARTERLY, price=13500)
        await _add_subscription(apprenant.id, -3, status=SubscriptionStatus.EXPIRED)
        await _add_subscription(apprenant.id, 20, status=SubscriptionStatus.PENDING_PAYMENT)

        response = await client.get("/api/subscriptions/statistics", headers=admin_headers)

        assert response.json() == {
            "total": 4,
            "active": 2,
            "expired": 1,
            "cancelled": 0,
            "pending_payment": 1,
            "total_revenue": 18500.0,
            "monthly_revenue": 5000.0,
        }


class TestMaintenance:
    """Auto-renewal, expiry and warnings."""

    async def test_auto_renew_due_subscriptions(self, client, admin_headers, apprenant):
        due = await _add_subscription(apprenant.id, -1, auto_renew=True)
        await _add_subscription(apprenant.id, 10, auto_renew=True)

        response = await client.post("/api/subscriptions/auto-renew", headers=admin_headers)

        assert response.status_code == 200
        renewed = response.json()
        assert [s["id"] for s in renewed] == [due]
        assert renewed[0]["status"] == "ACTIVE"

    async def test_failed_renewal_does_not_stop_others(self, apprenant, monkeypatch):
        failing = await _add_subscription(apprenant.id, -2, auto_renew=True)
        other = await _add_subscription(apprenant.id, -1, auto_renew=True)
        original_renew = SubscriptionService.renew

        async def renew(self, subscription_id, admin=True):
            if subscription_id == failing:
                raise RuntimeError("prestataire indisponible")
            return await original_renew(self, subscription_id, admin)

        monkeypatch.setattr(SubscriptionService, "renew", renew)

        async with AsyncSessionLocal() as db:
            renewed = await SubscriptionService(db).auto_renew_subscriptions()
            assert [s.id for s in renewed] == [other]

        async with AsyncSessionLocal() as db:
            assert (await db.get(Subscription, other)).end_date > utcnow()
            assert (await db.get(Subscription, failing)).end_date < utcnow()

    async def test_expire_skips_auto_renew(self, apprenant):
        expired = await _add_subscription(apprenant.id, -1)
        renewable = await _add_subscription(apprenant.id, -1, auto_renew=True)

        async with AsyncSessionLocal() as db:
            assert await SubscriptionService(db).expire_subscriptions() == 1

        async with AsyncSessionLocal() as db:
            assert (await db.get(Subscription, expired)).status == "EXPIRED"
            assert (await db.get(Subscription, renewable)).status == "ACTIVE"

    async def test_expiring_window(self, client, admin_headers, apprenant):
        soon = await _add_subscription(apprenant.id, 3)
        await _add_subscription(apprenant.id, 30)

        response = await client.get("/api/subscriptions/expiring", headers=admin_headers)
        assert [s["id"] for s in response.json()] == [soon]

    async def test_expiry_warning_sent_once(self, apprenant):
        await _add_subscription(apprenant.id, 3)

        async with AsyncSessionLocal() as db:
            assert await SubscriptionService(db).send_expiry_warnings() == 1
        async with AsyncSessionLocal() as db:
            assert await SubscriptionService(db).send_expiry_warnings() == 0


class TestCalendarMonths:
    """Periods are counted in calendar months."""

    def test_add_months_clamps_to_month_end(self):
        assert add_months(datetime(2026, 1, 31), 1) == datetime(2026, 2, 28)
        assert add_months(datetime(2028, 1, 31), 1) == datetime(2028, 2, 29)
        assert add_months(datetime(2026, 11, 30, 10, 30), 3) == datetime(2027, 2, 28, 10, 30)
        assert add_months(datetime(2026, 3, 15), 12) == datetime(2027, 3, 15)

    async def test_renew_from_month_end(self, client, admin_headers, apprenant):
        async with AsyncSessionLocal() as db:
            subscription = Subscription(
                user_id=apprenant.id,
                type=SubscriptionType.MONTHLY.value,
                price=5000,
                start_date=datetime(2026, 12, 31),
                end_date=datetime(2027, 1, 31),
                status=SubscriptionStatus.ACTIVE.value,
            )
            db.add(subscription)
            await db.commit()
            subscription_id = subscription.id

        response = await client.put(f"/api/subscriptions/{subscription_id}/renew", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["end_date"].startswith("2027-02-28")
