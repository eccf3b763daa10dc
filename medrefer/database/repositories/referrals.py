"""
Referral repository

Cached referral access with tracking numbers, triage on create, status
workflow and the referral reporting queries.

- Tracking numbers are generated when the caller leaves them empty
- The read-before-write duplicate check gives a clear error in the common
  case; the UNIQUE constraint on tracking_number catches the racing case
- Status changes evict the cached referral (notes are appended in SQL-side
  text, so the cached copy would be out of date)
"""
import logging
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional

from medrefer.core.errors import ConstraintError, DuplicateKeyError, ValidationError
from medrefer.database.events import ChangeKind
from medrefer.database.query import Where
from medrefer.database.repositories.base import CachedRepository
from medrefer.database.schemas import Referral
from medrefer.services.tracking import generate_tracking_number
from medrefer.services.triage import assess_referral, needs_assessment

logger = logging.getLogger(__name__)

VALID_URGENCIES = ("low", "medium", "high", "urgent")
VALID_STATUSES = ("pending", "approved", "rejected", "completed", "cancelled")


class ReferralRepository(CachedRepository[Referral]):
    model = Referral

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # In-memory analytics, reset with the process
        self.total_created = 0
        self.total_status_updates = 0
        self.created_by_department: Counter = Counter()
        self._last_tracking_ms = 0

    def validate(self, referral: Referral) -> None:
        if not referral.patient_id.strip():
            raise ValidationError("Patient ID is required", {"id": referral.id})
        if not (referral.department or "").strip():
            raise ValidationError("Department is required", {"id": referral.id})
        if not (referral.symptoms_description or "").strip():
            raise ValidationError("Symptoms description is required", {"id": referral.id})
        if not referral.urgency.strip():
            raise ValidationError("Urgency level is required", {"id": referral.id})
        if referral.urgency.lower() not in VALID_URGENCIES:
            raise ValidationError(f"Invalid urgency level: {referral.urgency}", {"id": referral.id})
        validate_status(referral.status)

    def _new_tracking_number(self) -> str:
        # Strictly increasing so two creates in the same millisecond differ
        now_ms = max(int(self.clock().timestamp() * 1000), self._last_tracking_ms + 1)
        self._last_tracking_ms = now_ms
        return generate_tracking_number(now_ms)

    async def prepare_for_create(self, referral: Referral) -> Referral:
        if not referral.tracking_number:
            referral = referral.model_copy(update={"tracking_number": self._new_tracking_number()})
        return referral

    def prepare_for_batch(self, referral: Referral) -> Referral:
        if not referral.tracking_number:
            referral = referral.model_copy(update={"tracking_number": self._new_tracking_number()})
        return referral

    async def check_duplicates(self, referral: Referral) -> None:
        existing = await self.get_by_tracking_number(referral.tracking_number)
        if existing is not None:
            raise self._duplicate(referral.tracking_number)

    def duplicate_error(self, referral: Referral, exc: ConstraintError) -> DuplicateKeyError:
        return self._duplicate(referral.tracking_number)

    def _duplicate(self, tracking_number: str) -> DuplicateKeyError:
        return DuplicateKeyError(
            f"Referral with tracking number {tracking_number} already exists",
            {"tracking_number": tracking_number},
        )

    async def create(self, referral: Referral) -> str:
        """
        Create a referral

        Fills the tracking number when empty, rejects taken tracking
        numbers and runs triage when ai_confidence is still 0.
        """
        self.validate(referral)
        referral = await self.prepare_for_create(referral)
        await self.check_duplicates(referral)
        if needs_assessment(referral):
            referral = assess_referral(referral)
        return await self._insert(referral)

    def after_create(self, referral: Referral) -> None:
        self.total_created += 1
        self.created_by_department[referral.department or "Unknown"] += 1

    # Read

    async def get_by_tracking_number(self, tracking_number: str) -> Optional[Referral]:
        """
        Lookup by tracking number

        Scans the cached referrals first (the cache is not indexed by
        tracking number), then falls back to the database.
        """
        cached = self._cache.find(lambda referral: referral.tracking_number == tracking_number)
        if cached is not None:
            return self._detached(cached)

        referrals = await self._query(Where().equals("tracking_number", tracking_number), limit=1)
        if not referrals:
            return None
        return self._remember(referrals[0])

    async def by_patient(
        self,
        patient_id: str,
        limit: Optional[int] = None,
        status: Optional[str] = None,
    ) -> List[Referral]:
        where = Where().equals("patient_id", patient_id)
        if status is not None:
            where.equals("status", status)
        return await self._query(where, limit=limit)

    async def by_specialist(
        self,
        specialist_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Referral]:
        where = Where().equals("specialist_id", specialist_id)
        _date_range(where, start, end)
        return await self._query(where)

    async def filter(
        self,
        status: Optional[str] = None,
        urgency: Optional[str] = None,
        department: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        min_ai_confidence: Optional[float] = None,
        patient_id: Optional[str] = None,
        specialist_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Referral]:
        where = _filter_where(
            status=status,
            urgency=urgency,
            department=department,
            patient_id=patient_id,
            specialist_id=specialist_id,
            start=start,
            end=end,
            min_ai_confidence=min_ai_confidence,
        )
        return await self._query(where, limit=limit, offset=offset)

    async def search(self, term: str) -> List[Referral]:
        """Tracking number, symptoms or department containing term"""
        where = Where().any_like(["tracking_number", "symptoms_description", "department"], term)
        return await self._query(where)

    # Update

    async def update_status(self, referral_id: str, status: str, notes: Optional[str] = None) -> bool:
        """
        Change status without re-validating the rest of the referral

        Notes, when given, are appended to the symptoms description with a
        timestamp. The cached referral is evicted, not refreshed.
        """
        validate_status(status)
        now = self.clock()
        values = {"status": status}

        if notes is not None:
            existing = await self.get_by_id(referral_id)
            if existing is not None:
                existing_notes = existing.symptoms_description or ""
                values["symptoms_description"] = (
                    f"{existing_notes}\n[{now.isoformat()}] Status changed to {status}: {notes}"
                )

        updated = await self._update_fields(
            referral_id, values, kind=ChangeKind.STATUS_CHANGED, new_status=status
        )
        if updated:
            self.total_status_updates += 1
            logger.info("Referral status updated: %s -> %s", referral_id, status)
        return updated

    async def assign_specialist(self, referral_id: str, specialist_id: str) -> bool:
        return await self._update_fields(referral_id, {"specialist_id": specialist_id})

    # Statistics

    async def _grouped_counts(self, column: str, order_by_count: bool = False) -> Dict[str, int]:
        sql = f"SELECT {column} AS value, COUNT(*) AS count FROM referrals GROUP BY {column}"
        if order_by_count:
            sql += " ORDER BY count DESC"
        rows = await self.store.raw_query(sql)
        return {row["value"]: row["count"] for row in rows}

    async def status_counts(self) -> Dict[str, int]:
        return await self._grouped_counts("status")

    async def urgency_counts(self) -> Dict[str, int]:
        return await self._grouped_counts("urgency")

    async def department_counts(self) -> Dict[str, int]:
        return await self._grouped_counts("department", order_by_count=True)

    async def average_ai_confidence(self) -> float:
        rows = await self.store.raw_query(
            "SELECT AVG(ai_confidence) AS avg_confidence FROM referrals WHERE ai_confidence > 0"
        )
        if rows and rows[0]["avg_confidence"] is not None:
            return float(rows[0]["avg_confidence"])
        return 0.0

    async def export_json(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> str:
        return await super().export_json(_filter_where(start=start, end=end))


def validate_status(status: str) -> None:
    if (status or "").lower() not in VALID_STATUSES:
        raise ValidationError(f"Invalid status: {status}", {"status": status})


def _date_range(where: Where, start: Optional[datetime], end: Optional[datetime]) -> Where:
    if start is not None:
        where.at_least("created_at", start.isoformat())
    if end is not None:
        where.at_most("created_at", end.isoformat())
    return where


def _filter_where(
    status: Optional[str] = None,
    urgency: Optional[str] = None,
    department: Optional[str] = None,
    patient_id: Optional[str] = None,
    specialist_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    min_ai_confidence: Optional[float] = None,
) -> Where:
    where = Where()
    for column, value in (
        ("status", status),
        ("urgency", urgency),
        ("department", department),
        ("patient_id", patient_id),
        ("specialist_id", specialist_id),
    ):
        if value is not None:
            where.equals(column, value)
    _date_range(where, start, end)
    if min_ai_confidence is not None:
        where.at_least("ai_confidence", min_ai_confidence)
    return where

