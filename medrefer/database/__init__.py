"""
Database module

Contains the data models, the row store and the repositories, plus
open_database() which wires them together.
"""
import logging
from datetime import datetime
from typing import Optional

from medrefer.core.config import Settings, get_settings
from medrefer.core.logging import configure_logging
from medrefer.database.cache import Clock
from medrefer.database.row_store import RowStore
from medrefer.database.repositories import (
    AppointmentRepository,
    ConditionRepository,
    MedicalHistoryRepository,
    MedicationRepository,
    MessageRepository,
    PatientRepository,
    ReferralRepository,
    SpecialistRepository,
)
from medrefer.database.schemas import (
    Appointment,
    Condition,
    Entity,
    MedicalHistory,
    Medication,
    Message,
    Patient,
    Referral,
    Specialist,
)

logger = logging.getLogger(__name__)


class Database:
    """
    One open row store and a repository per table

    Build with open_database(); call close() when done.
    """
    def __init__(self, store: RowStore, settings: Settings, clock: Clock = datetime.now):
        self.store = store
        self.settings = settings
        cached = dict(
            clock=clock,
            ttl_seconds=settings.cache_ttl_seconds,
            listing_debounce_seconds=settings.listing_debounce_seconds,
        )
        self.patients = PatientRepository(store, page_size=settings.page_size, **cached)
        self.referrals = ReferralRepository(store, **cached)
        self.specialists = SpecialistRepository(store, clock)
        self.medications = MedicationRepository(store, clock)
        self.conditions = ConditionRepository(store, clock)
        self.medical_history = MedicalHistoryRepository(store, clock)
        self.appointments = AppointmentRepository(store, clock)
        self.messages = MessageRepository(store, clock)

    async def close(self) -> None:
        self.patients.dispose()
        self.referrals.dispose()
        await self.store.close()


async def open_database(settings: Optional[Settings] = None, clock: Clock = datetime.now) -> Database:
    """
    Open (creating if needed) the database described by settings

    Args:
        settings: Defaults to get_settings()
        clock: Time source shared by every repository

    Returns:
        Database with the schema in place
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    store = RowStore(settings.database_path)
    await store.initialize()
    logger.info("Database ready at %s", settings.database_path)
    return Database(store, settings, clock)


__all__ = [
    # Bootstrap
    "Database",
    "open_database",
    "RowStore",
    # Schemas
    "Entity",
    "Patient",
    "Referral",
    "Specialist",
    "Medication",
    "Condition",
    "MedicalHistory",
    "Appointment",
    "Message",
]
