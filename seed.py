import asyncio
from datetime import timedelta

from sqlalchemy import select

from edb.auth.models import User, UserRole, UserStatus
from edb.auth.password import hash_password
from edb.cohorts.models import Cohort, CohortStatus, FormationType
from edb.db.session import Base, engine, AsyncSessionLocal
from edb.subscriptions.models import SubscriptionPlan, SubscriptionType
from edb.utils.avatar import generate_default_avatar_url
from edb.utils.dates import utcnow
import edb.db.models  # noqa: F401

USERS = [
    ("admin@ecoledelabourse.com", "Admin123!", "Admin", "EDB", UserRole.ADMIN),
    ("coach@ecoledelabourse.com", "Coach123!", "Awa", "Diallo", UserRole.COACH),
    ("apprenant@ecoledelabourse.com", "Apprenant123!", "Moussa", "Traoré", UserRole.APPRENANT),
]

PLANS = [
    ("Mensuel", SubscriptionType.MONTHLY, 5000, 1, ["Accès aux replays", "Coaching de groupe"]),
    ("Trimestriel", SubscriptionType.QUARTERLY, 13500, 3, ["Accès aux replays", "Coaching de groupe", "-10 %"]),
    ("Annuel", SubscriptionType.YEARLY, 48000, 12, ["Accès aux replays", "Coaching individuel", "-20 %"]),
]


async def seed():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        for email, password, first_name, last_name, role in USERS:
            existing = await db.execute(select(User).where(User.email == email))
            if existing.scalars().first():
                print(f"Utilisateur déjà présent : {email}")
                continue
            db.add(User(
                email=email,
                hashed_password=hash_password(password),
                first_name=first_name,
                last_name=last_name,
                role=role.value,
                status=UserStatus.ACTIVE.value,
                email_verified=True,
                avatar=generate_default_avatar_url(first_name, last_name),
            ))
            print(f"Utilisateur créé : {email} ({role.value})")

        for name, plan_type, price, months, features in PLANS:
            existing = await db.execute(select(SubscriptionPlan).where(SubscriptionPlan.name == name))
            if existing.scalars().first():
                print(f"Plan déjà présent : {name}")
                continue
            plan = SubscriptionPlan(name=name, type=plan_type.value, price=price, currency="XOF",
                                    duration_months=months)
            plan.features = features
            db.add(plan)
            print(f"Plan créé : {name} ({price} XOF)")

        existing = await db.execute(select(Cohort).where(Cohort.name == "Cohorte Bourse 2026"))
        if not existing.scalars().first():
            now = utcnow()
            db.add(Cohort(
                name="Cohorte Bourse 2026",
                description="Initiation aux marchés financiers de la BRVM",
                type=FormationType.TRADING_BASICS.value,
                status=CohortStatus.ACTIVE.value,
                start_date=now,
                end_date=now + timedelta(days=90),
                max_students=30,
                price=150000,
            ))
            print("Cohorte créée : Cohorte Bourse 2026")

        await db.commit()
    await engine.dispose()
    print("Données initiales en place")

if __name__ == "__main__":
    asyncio.run(seed())
