"""
Repositories for the clinical records around a referral

Specialists, medications, conditions, medical history, appointments and
messages. All uncached; see plain.py.
"""
import logging
from datetime import date, datetime, time
from typing import Dict, List, Optional

from medrefer.database.query import Where
from medrefer.database.repositories.plain import PlainRepository
from medrefer.database.schemas import (
    Appointment,
    Condition,
    MedicalHistory,
    Medication,
    Message,
    Specialist,
)

logger = logging.getLogger(__name__)


class SpecialistRepository(PlainRepository[Specialist]):
    model = Specialist
    default_order_by = "rating DESC"

    async def by_specialty(self, specialty: str) -> List[Specialist]:
        return await self.find_where(Where().equals("specialty", specialty))

    async def available(self) -> List[Specialist]:
        return await self.find_where(Where().equals("is_available", 1))

    async def search(self, term: str) -> List[Specialist]:
        """Name, specialty or hospital containing term"""
        return await self.find_where(Where().any_like(["name", "specialty", "hospital"], term))

    async def by_hospital(self, hospital: str) -> List[Specialist]:
        return await self.find_where(Where().equals("hospital", hospital))

    async def by_min_rating(self, min_rating: float) -> List[Specialist]:
        return await self.find_where(Where().at_least("rating", min_rating))

    async def filter(
        self,
        specialty: Optional[str] = None,
        hospital: Optional[str] = None,
        min_rating: Optional[float] = None,
        available_only: bool = False,
        language: Optional[str] = None,
    ) -> List[Specialist]:
        """
        Combined directory filter; unset arguments do not constrain

        language matches anywhere in the comma-joined languages column.
        """
        where = Where()
        if specialty is not None:
            where.equals("specialty", specialty)
        if hospital is not None:
            where.equals("hospital", hospital)
        if min_rating is not None:
            where.at_least("rating", min_rating)
        if available_only:
            where.equals("is_available", 1)
        if language is not None:
            where.like("languages", f"%{language}%")
        return await self.find_where(where or None)

    async def update_availability(self, specialist_id: str, is_available: bool) -> bool:
        return await self.update_fields(specialist_id, {"is_available": int(is_available)})

    async def update_rating(self, specialist_id: str, rating: float) -> bool:
        return await self.update_fields(specialist_id, {"rating": rating})

    async def specialty_counts(self) -> Dict[str, int]:
        rows = await self.store.raw_query(
            "SELECT specialty, COUNT(*) AS count FROM specialists GROUP BY specialty ORDER BY count DESC"
        )
        return {row["specialty"]: row["count"] for row in rows}

    async def specialties(self) -> List[str]:
        rows = await self.store.raw_query("SELECT DISTINCT specialty FROM specialists ORDER BY specialty")
        return [row["specialty"] for row in rows]

    async def hospitals(self) -> List[str]:
        rows = await self.store.raw_query("SELECT DISTINCT hospital FROM specialists ORDER BY hospital")
        return [row["hospital"] for row in rows]

    async def average_rating(self) -> float:
        rows = await self.store.raw_query("SELECT AVG(rating) AS avg_rating FROM specialists")
        if rows and rows[0]["avg_rating"] is not None:
            return float(rows[0]["avg_rating"])
        return 0.0


class _PatientRecords:
    """Helpers shared by the per-patient record tables"""

    async def for_patient(self, patient_id: str) -> List:
        return await self.find_by_foreign_key(patient_id)

    async def count_for_patient(self, patient_id: str) -> int:
        return await self.count(Where().equals("patient_id", patient_id))


class MedicationRepository(_PatientRecords, PlainRepository[Medication]):
    model = Medication
    foreign_key = "patient_id"

    async def active_for_patient(self, patient_id: str) -> List[Medication]:
        where = Where().equals("patient_id", patient_id).equals("status", "Active")
        return await self.find_where(where)


class ConditionRepository(_PatientRecords, PlainRepository[Condition]):
    model = Condition
    foreign_key = "patient_id"

    async def active_for_patient(self, patient_id: str) -> List[Condition]:
        where = Where().equals("patient_id", patient_id).equals("is_active", 1)
        return await self.find_where(where)


class MedicalHistoryRepository(PlainRepository[MedicalHistory]):
    model = MedicalHistory
    foreign_key = "patient_id"
    default_order_by = "date DESC"

    async def for_patient(self, patient_id: str) -> List[MedicalHistory]:
        return await self.find_by_foreign_key(patient_id)

    async def by_type(self, patient_id: str, entry_type: str) -> List[MedicalHistory]:
        return await self.find_where(Where().equals("patient_id", patient_id).equals("type", entry_type))

    async def delete_for_patient(self, patient_id: str) -> int:
        deleted = await self.delete_where(Where().equals("patient_id", patient_id))
        logger.info("Deleted %d medical history entries for patient %s", deleted, patient_id)
        return deleted


class AppointmentRepository(PlainRepository[Appointment]):
    model = Appointment
    foreign_key = "patient_id"
    default_order_by = "date ASC"

    async def for_patient(self, patient_id: str) -> List[Appointment]:
        return await self.find_by_foreign_key(patient_id)

    async def for_specialist(self, specialist_id: str) -> List[Appointment]:
        return await self.find_where(Where().equals("specialist_id", specialist_id))

    async def on_date(self, day: date) -> List[Appointment]:
        """Appointments starting any time on the given calendar day"""
        start = datetime.combine(day, time.min).isoformat()
        end = datetime.combine(day, time.max).isoformat()
        return await self.find_where(Where().between("date", start, end))

    async def upcoming(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[Appointment]:
        """Scheduled appointments from now on, soonest first"""
        now = now or self.clock()
        where = Where().at_least("date", now.isoformat()).equals("status", "Scheduled")
        return await self.find_where(where, limit=limit)

    async def update_status(self, appointment_id: str, status: str) -> bool:
        return await self.update_fields(appointment_id, {"status": status})


class MessageRepository(PlainRepository[Message]):
    model = Message
    foreign_key = "conversation_id"
    default_order_by = "timestamp DESC"

    async def for_conversation(self, conversation_id: str) -> List[Message]:
        """Oldest first, the order a thread is displayed in"""
        return await self.find_by_foreign_key(conversation_id, order_by="timestamp ASC")

    async def for_referral(self, referral_id: str) -> List[Message]:
        return await self.find_where(Where().equals("referral_id", referral_id), order_by="timestamp ASC")

    async def search(self, term: str) -> List[Message]:
        return await self.find_where(Where().any_like(["content", "sender_name"], term))

    async def recent(self, limit: int = 20) -> List[Message]:
        return await self.find_all(limit=limit)

    async def unread_count(self, reader_id: str) -> int:
        """Messages not yet read, excluding the reader's own"""
        return await self.count(Where().not_equals("status", "read").not_equals("sender_id", reader_id))

    async def update_status(self, message_id: str, status: str) -> bool:
        return await self.update_fields(message_id, {"status": status})

    async def mark_conversation_read(self, conversation_id: str, reader_id: str) -> int:
        """
        Mark every message in a conversation as read, except the reader's own

        Returns:
            Number of messages changed
        """
        where = (
            Where()
            .equals("conversation_id", conversation_id)
            .not_equals("sender_id", reader_id)
            .not_equals("status", "read")
        )
        values = {"status": "read", "updated_at": self.clock().isoformat()}
        return await self.store.update(self.table, values, where)

    async def delete_conversation(self, conversation_id: str) -> int:
        return await self.delete_where(Where().equals("conversation_id", conversation_id))

    async def conversation_ids(self) -> List[str]:
        """Conversation ids, most recently active first"""
        rows = await self.store.raw_query(
            """
            SELECT conversation_id, MAX(timestamp) AS last_message
            FROM messages
            GROUP BY conversation_id
            ORDER BY last_message DESC
            """
        )
        return [row["conversation_id"] for row in rows]
