# Test configuration
import os
import tempfile

# Set test environment variables BEFORE importing edb modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["APP_ENV"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret-for-testing-only"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["NOTIFICATION_WORKER_ENABLED"] = "false"
os.environ["SMTP_HOST"] = ""
os.environ["TWILIO_ACCOUNT_SID"] = ""
for key in ("CINETPAY_API_KEY", "CINETPAY_SITE_ID", "ORANGE_MONEY_API_KEY", "ORANGE_MONEY_MERCHANT_KEY", "WAVE_API_KEY"):
    os.environ[key] = ""
os.environ["UPLOAD_PATH"] = tempfile.mkdtemp(prefix="edb-upload-")

import pytest  # noqa: E402
import requests  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from edb.auth.jwt_handler import create_access_token  # noqa: E402
from edb.auth.models import User, UserRole, UserStatus  # noqa: E402
from edb.auth.password import hash_password  # noqa: E402
from edb.config import settings  # noqa: E402
from edb.db.session import AsyncSessionLocal, Base, engine  # noqa: E402
from edb.main import app  # noqa: E402
from edb.notifications.queue import notification_queue  # noqa: E402
import edb.db.models  # noqa: E402,F401

PASSWORD = "Secret123!"
_hashed_password = None


def _password_hash() -> str:
    # bcrypt est lent : un seul hash pour toute la session de tests
    global _hashed_password
    if _hashed_password is None:
        _hashed_password = hash_password(PASSWORD)
    return _hashed_password


async def create_user(email: str, role: UserRole = UserRole.APPRENANT,
                      status: UserStatus = UserStatus.ACTIVE, **fields) -> User:
    async with AsyncSessionLocal() as db:
        user = User(
            email=email,
            hashed_password=_password_hash(),
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", role.value.capitalize()),
            role=role.value,
            status=status.value,
            **fields,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture(autouse=True)
async def database():
    """Fresh in-memory database for each test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    notification_queue.clear()
    await engine.dispose()


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client


@pytest.fixture
async def admin():
    return await create_user("admin@example.com", UserRole.ADMIN, first_name="Admin")


@pytest.fixture
async def coach():
    return await create_user("coach@example.com", UserRole.COACH, first_name="Awa", last_name="Diallo")


@pytest.fixture
async def apprenant():
    return await create_user("apprenant@example.com", UserRole.APPRENANT, first_name="Moussa",
                             last_name="Traore", phone="+22670000000")


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def coach_headers(coach):
    return auth_headers(coach)


@pytest.fixture
def apprenant_headers(apprenant):
    return auth_headers(apprenant)


@pytest.fixture
def offline_providers(monkeypatch):
    """Payment providers unreachable: every outgoing HTTP call fails."""
    calls = []

    def unreachable(url, *args, **kwargs):
        calls.append(url)
        raise requests.ConnectionError("network disabled in tests")

    monkeypatch.setattr(requests, "post", unreachable)
    monkeypatch.setattr(requests, "get", unreachable)
    return calls


@pytest.fixture
def provider_keys(monkeypatch):
    """Credentials for every online payment provider."""
    monkeypatch.setattr(settings, "CINETPAY_API_KEY", "cp-key")
    monkeypatch.setattr(settings, "CINETPAY_SITE_ID", "cp-site")
    monkeypatch.setattr(settings, "ORANGE_MONEY_API_KEY", "om-key")
    monkeypatch.setattr(settings, "ORANGE_MONEY_MERCHANT_KEY", "om-merchant")
    monkeypatch.setattr(settings, "WAVE_API_KEY", "wave-key")


@pytest.fixture
def sample_cohort_data():
    return {
        "name": "Cohorte Bourse Test",
        "description": "Initiation aux marchés",
        "type": "TRADING_BASICS",
        "start_date": "2026-01-10T09:00:00",
        "end_date": "2026-04-10T09:00:00",
        "max_students": 2,
        "price": 150000,
    }
