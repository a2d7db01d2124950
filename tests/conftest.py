"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from datetime import date, time, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from clinicops.access.context import AccessContext
from clinicops.api.deps import get_notifier
from clinicops.core.security import create_access_token
from clinicops.db.base import Base
from clinicops.db.session import get_db
from clinicops.main import app
from clinicops.models.scheduling import Appointment, AppointmentStatus
from clinicops.models.user import Clinician, Patient, StaffMember, User, UserRole
from clinicops.services.notifications import (
    NotificationAck,
    NotificationDispatcher,
    NotificationPayload,
    Notifier,
    NotifierError,
)
from clinicops.store.sqlalchemy import SqlAlchemyRecordStore
from clinicops.utils.time import utc_now


# Use SQLite for testing (simpler than spinning up postgres)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SLOT_TIME = time(10, 0)


def future_date(days: int = 7) -> date:
    """A date safely in the future for booking tests."""
    return utc_now().date() + timedelta(days=days)


class RecordingNotifier(Notifier):
    """Notifier fake that keeps every payload in memory."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[str, NotificationPayload]] = []

    async def send(self, principal_id: str, payload: NotificationPayload) -> NotificationAck:
        if self.fail:
            raise NotifierError("delivery channel down")
        self.sent.append((principal_id, payload))
        return NotificationAck(delivered=True, notification_id=f"n-{len(self.sent)}")

    def to(self, principal_id: str) -> list[NotificationPayload]:
        return [payload for recipient, payload in self.sent if recipient == principal_id]

    def titles(self) -> list[str]:
        return [payload.title for _, payload in self.sent]


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def async_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(async_session: AsyncSession) -> SqlAlchemyRecordStore:
    return SqlAlchemyRecordStore(async_session)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier: RecordingNotifier, store: SqlAlchemyRecordStore) -> NotificationDispatcher:
    return NotificationDispatcher(notifier, store)


async def _add(session: AsyncSession, *rows):
    session.add_all(rows)
    await session.commit()
    for row in rows:
        await session.refresh(row)
    return rows


async def _make_user(session: AsyncSession, email: str, name: str, role: UserRole) -> User:
    user = User(email=email, name=name, role=role, is_active=True)
    (user,) = await _add(session, user)
    return user


@pytest.fixture
async def patient_user(async_session: AsyncSession) -> User:
    return await _make_user(async_session, "pat@clinicops.local", "Pat Patient", UserRole.PATIENT)


@pytest.fixture
async def patient(async_session: AsyncSession, patient_user: User) -> Patient:
    (row,) = await _add(async_session, Patient(user_id=patient_user.id))
    return row


@pytest.fixture
async def other_patient_user(async_session: AsyncSession) -> User:
    return await _make_user(async_session, "olive@clinicops.local", "Olive Other", UserRole.PATIENT)


@pytest.fixture
async def other_patient(async_session: AsyncSession, other_patient_user: User) -> Patient:
    (row,) = await _add(async_session, Patient(user_id=other_patient_user.id))
    return row


@pytest.fixture
async def clinician_user(async_session: AsyncSession) -> User:
    return await _make_user(async_session, "cruz@clinicops.local", "Cruz", UserRole.CLINICIAN)


@pytest.fixture
async def clinician(async_session: AsyncSession, clinician_user: User) -> Clinician:
    (row,) = await _add(
        async_session,
        Clinician(
            user_id=clinician_user.id,
            specialty="General Practice",
            license_number="LIC-0001",
            is_available=True,
        ),
    )
    return row


@pytest.fixture
async def other_clinician_user(async_session: AsyncSession) -> User:
    return await _make_user(async_session, "reyes@clinicops.local", "Reyes", UserRole.CLINICIAN)


@pytest.fixture
async def other_clinician(async_session: AsyncSession, other_clinician_user: User) -> Clinician:
    (row,) = await _add(
        async_session,
        Clinician(
            user_id=other_clinician_user.id,
            specialty="Dermatology",
            license_number="LIC-0002",
            is_available=True,
        ),
    )
    return row


@pytest.fixture
async def staff_user(async_session: AsyncSession) -> User:
    user = await _make_user(async_session, "desk@clinicops.local", "Dana Desk", UserRole.STAFF)
    await _add(
        async_session,
        StaffMember(user_id=user.id, department="Front Desk", position="Receptionist"),
    )
    return user


@pytest.fixture
async def second_staff_user(async_session: AsyncSession) -> User:
    return await _make_user(async_session, "desk2@clinicops.local", "Sam Desk", UserRole.STAFF)


@pytest.fixture
async def admin_user(async_session: AsyncSession) -> User:
    return await _make_user(async_session, "admin@clinicops.local", "Ada Admin", UserRole.ADMIN)


@pytest.fixture
def patient_ctx(patient_user: User, patient: Patient) -> AccessContext:
    return AccessContext(user_id=patient_user.id, role=UserRole.PATIENT, patient_id=patient.id)


@pytest.fixture
def other_patient_ctx(other_patient_user: User, other_patient: Patient) -> AccessContext:
    return AccessContext(
        user_id=other_patient_user.id, role=UserRole.PATIENT, patient_id=other_patient.id
    )


@pytest.fixture
def clinician_ctx(clinician_user: User, clinician: Clinician) -> AccessContext:
    return AccessContext(
        user_id=clinician_user.id, role=UserRole.CLINICIAN, clinician_id=clinician.id
    )


@pytest.fixture
def other_clinician_ctx(other_clinician_user: User, other_clinician: Clinician) -> AccessContext:
    return AccessContext(
        user_id=other_clinician_user.id,
        role=UserRole.CLINICIAN,
        clinician_id=other_clinician.id,
    )


@pytest.fixture
def staff_ctx(staff_user: User) -> AccessContext:
    return AccessContext(user_id=staff_user.id, role=UserRole.STAFF)


@pytest.fixture
def admin_ctx(admin_user: User) -> AccessContext:
    return AccessContext(user_id=admin_user.id, role=UserRole.ADMIN)


@pytest.fixture
def make_appointment(async_session: AsyncSession):
    """Factory inserting appointments directly, bypassing the lifecycle."""

    async def factory(
        patient: Patient,
        clinician: Clinician,
        status: AppointmentStatus = AppointmentStatus.PENDING,
        appointment_date: date | None = None,
        appointment_time: time = SLOT_TIME,
        age: timedelta | None = None,
        **fields,
    ) -> Appointment:
        appointment = Appointment(
            patient_id=patient.id,
            clinician_id=clinician.id,
            service_type="Consultation",
            appointment_date=appointment_date or future_date(),
            appointment_time=appointment_time,
            status=status.value,
            version=1,
            **fields,
        )
        if age is not None:
            appointment.created_at = utc_now() - age
        (row,) = await _add(async_session, appointment)
        return row

    return factory


@pytest.fixture
def reload(async_session: AsyncSession):
    """Re-read one row from the database.

    Only the requested row is refreshed; other fixture rows keep their
    loaded attributes so reading them never triggers a lazy load.
    """

    async def fetch(model: type, record_id: str):
        return await async_session.get(model, record_id, populate_existing=True)

    return fetch


@pytest.fixture
def slot_date() -> date:
    return future_date()


@pytest.fixture
def failing_notifier() -> RecordingNotifier:
    return RecordingNotifier(fail=True)


def create_test_token(user: User) -> str:
    """Create a test JWT token for a user."""
    return create_access_token(subject=user.id)


@pytest.fixture
def auth_headers():
    """Build authorization headers for a user."""

    def build(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_test_token(user)}"}

    return build


@pytest.fixture(scope="function")
async def client(
    async_session: AsyncSession, notifier: RecordingNotifier
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the ASGI app with overridden dependencies."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield async_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()
