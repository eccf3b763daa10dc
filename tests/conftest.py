"""
Shared fixtures: in-memory row store, controllable clock, sample entities
"""
from datetime import datetime, timedelta
from typing import List

import pytest
import pytest_asyncio

from medrefer.database.repositories import (
    AppointmentRepository,
    MessageRepository,
    PatientRepository,
    ReferralRepository,
    SpecialistRepository,
)
from medrefer.database.row_store import RowStore
from medrefer.database.schemas import (
    Appointment,
    Condition,
    MedicalHistory,
    Medication,
    Message,
    Patient,
    Referral,
    Specialist,
)

START = datetime(2024, 3, 1, 9, 0, 0)


class FakeClock:
    """Clock that only moves when told to"""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class CountingRowStore(RowStore):
    """RowStore that records every database round trip"""

    def __init__(self, path: str):
        super().__init__(path)
        self.operations: List[str] = []

    async def _run(self, operation, fn, *args):
        self.operations.append(operation)
        return await super()._run(operation, fn, *args)

    @property
    def reads(self) -> int:
        return self.operations.count("query")

    @property
    def inserts(self) -> int:
        return sum(1 for op in self.operations if op.startswith(("insert", "batch insert")))

    def reset(self) -> None:
        self.operations.clear()


@pytest.fixture
def clock():
    """Fake clock starting at a fixed instant"""
    return FakeClock()


@pytest_asyncio.fixture
async def store():
    """Fresh in-memory database with the schema applied"""
    row_store = CountingRowStore(":memory:")
    await row_store.initialize()
    row_store.reset()
    yield row_store
    await row_store.close()


@pytest_asyncio.fixture
async def patients(store, clock):
    repo = PatientRepository(store, clock=clock, ttl_seconds=300, listing_debounce_seconds=0)
    yield repo
    repo.dispose()


@pytest_asyncio.fixture
async def referrals(store, clock):
    repo = ReferralRepository(store, clock=clock, ttl_seconds=300, listing_debounce_seconds=0)
    yield repo
    repo.dispose()


@pytest.fixture
def specialists(store, clock):
    return SpecialistRepository(store, clock)


@pytest.fixture
def appointments(store, clock):
    return AppointmentRepository(store, clock)


@pytest.fixture
def messages(store, clock):
    return MessageRepository(store, clock)


# Sample entities

def make_patient(**overrides) -> Patient:
    values = dict(
        name="Jane Smith",
        age=42,
        medical_record_number="MRN-1001",
        date_of_birth=datetime(1982, 5, 14),
        gender="Female",
        phone="+1 (555) 123-4567",
        email="jane.smith@example.com",
        created_at=START,
        updated_at=START,
    )
    values.update(overrides)
    return Patient(**values)


def make_referral(patient_id: str = "patient-1", **overrides) -> Referral:
    values = dict(
        patient_id=patient_id,
        urgency="medium",
        department="Cardiology",
        symptoms_description="Intermittent chest discomfort on exertion",
        referring_physician="Dr. Adams",
        created_at=START,
        updated_at=START,
    )
    values.update(overrides)
    return Referral(**values)


def make_specialist(**overrides) -> Specialist:
    values = dict(
        name="Dr. Rivera",
        credentials="MD, FACC",
        specialty="Cardiology",
        hospital="St. Mary's",
        rating=4.6,
        languages=["English", "Spanish"],
        insurance=["Aetna", "Medicare"],
        created_at=START,
        updated_at=START,
    )
    values.update(overrides)
    return Specialist(**values)


def make_medication(patient_id: str = "patient-1", **overrides) -> Medication:
    values = dict(
        patient_id=patient_id,
        name="Lisinopril",
        dosage="10 mg",
        frequency="once daily",
        start_date=datetime(2023, 1, 10),
        created_at=START,
        updated_at=START,
    )
    values.update(overrides)
    return Medication(**values)


def make_condition(patient_id: str = "patient-1", **overrides) -> Condition:
    values = dict(
        patient_id=patient_id,
        name="Hypertension",
        severity="Moderate",
        icd10_code="I10",
        created_at=START,
        updated_at=START,
    )
    values.update(overrides)
    return Condition(**values)


def make_history(patient_id: str = "patient-1", **overrides) -> MedicalHistory:
    values = dict(
        patient_id=patient_id,
        type="Surgery",
        title="Appendectomy",
        date=datetime(2015, 6, 2),
        created_at=START,
        updated_at=START,
    )
    values.update(overrides)
    return MedicalHistory(**values)


def make_appointment(patient_id: str = "patient-1", **overrides) -> Appointment:
    values = dict(
        patient_id=patient_id,
        date=START + timedelta(days=3),
        reason="Follow-up",
        duration_minutes=30,
        created_at=START,
        updated_at=START,
    )
    values.update(overrides)
    return Appointment(**values)


def make_message(conversation_id: str = "conv-1", **overrides) -> Message:
    values = dict(
        conversation_id=conversation_id,
        sender_id="user-1",
        sender_name="Dr. Adams",
        content="Patient is ready for review",
        timestamp=START,
        created_at=START,
        updated_at=START,
    )
    values.update(overrides)
    return Message(**values)
