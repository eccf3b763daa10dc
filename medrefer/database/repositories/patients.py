"""
Patient repository

Cached patient access plus the search and reporting queries used by the
patient screens.
"""
import re
from datetime import datetime
from typing import Dict, List, Optional

from medrefer.core.config import PAGE_SIZE
from medrefer.core.errors import ConstraintError, DuplicateKeyError, ValidationError
from medrefer.database.codec import columns, from_rows
from medrefer.database.query import Where
from medrefer.database.repositories.base import CachedRepository
from medrefer.database.schemas import Patient

EMAIL_PATTERN = re.compile(r"^[\w\-.]+@([\w-]+\.)+[\w-]{2,4}$")
PHONE_PATTERN = re.compile(r"^[+]?[\d\s\-()]+$")

MAX_AGE = 150


class PatientRepository(CachedRepository[Patient]):
    model = Patient
    default_order_by = "name ASC"

    def __init__(self, *args, page_size: int = PAGE_SIZE, **kwargs):
        super().__init__(*args, **kwargs)
        self.page_size = page_size

    def validate(self, patient: Patient) -> None:
        if not patient.name.strip():
            raise ValidationError("Patient name is required")
        if not patient.medical_record_number.strip():
            raise ValidationError("Medical record number is required")
        if patient.age < 0 or patient.age > MAX_AGE:
            raise ValidationError(f"Invalid age: {patient.age}", {"id": patient.id})
        if patient.email and not EMAIL_PATTERN.match(patient.email):
            raise ValidationError(f"Invalid email format: {patient.email}", {"id": patient.id})
        if patient.phone and not PHONE_PATTERN.match(patient.phone):
            raise ValidationError(f"Invalid phone format: {patient.phone}", {"id": patient.id})

    async def check_duplicates(self, patient: Patient) -> None:
        existing = await self.get_by_mrn(patient.medical_record_number)
        if existing is not None:
            raise DuplicateKeyError(
                f"Patient with MRN {patient.medical_record_number} already exists",
                {"medical_record_number": patient.medical_record_number},
            )

    def duplicate_error(self, patient: Patient, exc: ConstraintError) -> DuplicateKeyError:
        return DuplicateKeyError(
            f"Patient with MRN {patient.medical_record_number} already exists",
            {"medical_record_number": patient.medical_record_number},
        )

    async def list(
        self,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        order_by: Optional[str] = None,
    ) -> List[Patient]:
        """
        One page of patients ordered by name (page_size rows by default)
        """
        return await super().list(
            limit=limit if limit is not None else self.page_size,
            offset=offset or 0,
            order_by=order_by,
        )

    async def get_by_mrn(self, medical_record_number: str) -> Optional[Patient]:
        patients = await self._query(Where().equals("medical_record_number", medical_record_number), limit=1)
        return patients[0] if patients else None

    async def search(self, term: str) -> List[Patient]:
        """Name, MRN or email containing term"""
        where = Where().any_like(["name", "medical_record_number", "email"], term)
        return await self._query(where)

    async def by_age_range(self, min_age: int, max_age: int) -> List[Patient]:
        return await self._query(Where().between("age", min_age, max_age), order_by="age ASC")

    async def by_gender(self, gender: str) -> List[Patient]:
        return await self._query(Where().equals("gender", gender))

    async def recent(self, limit: int = 10) -> List[Patient]:
        return await self._query(order_by="created_at DESC", limit=limit)

    async def with_upcoming_appointments(self, now: Optional[datetime] = None) -> List[Patient]:
        """
        Patients with at least one appointment from now on, soonest first
        """
        now = now or self.clock()
        select = ", ".join(f"p.{column}" for column in columns(Patient))
        rows = await self.store.raw_query(
            f"""
            SELECT {select}
            FROM patients p
            INNER JOIN (
                SELECT patient_id, MIN(date) AS next_date
                FROM appointments
                WHERE date >= ?
                GROUP BY patient_id
            ) a ON p.id = a.patient_id
            ORDER BY a.next_date ASC
            """,
            [now.isoformat()],
        )
        return from_rows(Patient, rows)

    # Statistics

    async def gender_counts(self) -> Dict[str, int]:
        rows = await self.store.raw_query(
            "SELECT gender, COUNT(*) AS count FROM patients GROUP BY gender"
        )
        return {row["gender"]: row["count"] for row in rows}

    async def age_group_counts(self) -> Dict[str, int]:
        rows = await self.store.raw_query(
            """
            SELECT
              CASE
                WHEN age < 18 THEN 'Under 18'
                WHEN age BETWEEN 18 AND 30 THEN '18-30'
                WHEN age BETWEEN 31 AND 50 THEN '31-50'
                WHEN age BETWEEN 51 AND 70 THEN '51-70'
                ELSE 'Over 70'
              END AS age_group,
              COUNT(*) AS count
            FROM patients
            GROUP BY age_group
            """
        )
        return {row["age_group"]: row["count"] for row in rows}
