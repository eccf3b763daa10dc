"""
Repositories

Cached repositories (patients, referrals) and plain pass-through ones for
every other table.
"""
from medrefer.database.repositories.base import CachedRepository
from medrefer.database.repositories.clinical import (
    AppointmentRepository,
    ConditionRepository,
    MedicalHistoryRepository,
    MedicationRepository,
    MessageRepository,
    SpecialistRepository,
)
from medrefer.database.repositories.patients import PatientRepository
from medrefer.database.repositories.plain import PlainRepository
from medrefer.database.repositories.referrals import ReferralRepository

__all__ = [
    "CachedRepository",
    "PlainRepository",
    "PatientRepository",
    "ReferralRepository",
    "SpecialistRepository",
    "MedicationRepository",
    "ConditionRepository",
    "MedicalHistoryRepository",
    "AppointmentRepository",
    "MessageRepository",
]
