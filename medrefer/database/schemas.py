"""
Data models for the local clinical-referral database

- One pydantic model per table, field names match column names
- Pydantic provides automatic validation of row values
- Optional fields for flexibility, lists default to empty
- Row (de)serialization lives in codec.py, not here
"""
import uuid
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def new_id() -> str:
    return str(uuid.uuid4())


class Entity(BaseModel):
    """
    Common fields for every stored record

    id is client-generated and never changes after creation.
    """
    model_config = ConfigDict(validate_assignment=True)

    table: ClassVar[str] = ""

    id: str                 = Field(default_factory=new_id, description="Unique identifier (uuid4, client-generated)")
    created_at: datetime    = Field(default_factory=datetime.now, description="Timestamp when the record was created")
    updated_at: datetime    = Field(default_factory=datetime.now, description="Timestamp when the record was last updated")

    def touch(self, now: Optional[datetime] = None) -> None:
        """Stamp updated_at, never moving it before created_at"""
        stamp = now or datetime.now()
        self.updated_at = max(stamp, self.created_at)


class Patient(Entity):
    """
    Patient model

    CURRENT: Demographics plus contact details used by referral screens
    """
    table: ClassVar[str] = "patients"

    name: str                           = Field(...,  description="Patient legal name")
    age: int                            = Field(...,  description="Age in years")
    medical_record_number: str          = Field(...,  description="Medical record number (unique)")
    date_of_birth: datetime             = Field(...,  description="Date of birth")
    gender: str                         = Field(...,  description="Gender as recorded at intake")
    blood_type: Optional[str]           = Field(None, description="ABO/Rh blood type")
    phone: Optional[str]                = Field(None, description="Phone number")
    email: Optional[str]                = Field(None, description="Email address")
    address: Optional[str]              = Field(None, description="Postal address")
    insurance: Optional[str]            = Field(None, description="Insurance provider")
    profile_image_url: Optional[str]    = Field(None, description="Profile picture location")


class Referral(Entity):
    """
    Referral from a referring physician to a specialist

    tracking_number is the human-facing identifier (REF-<digits>-<digits>)
    """
    table: ClassVar[str] = "referrals"

    tracking_number: str                = Field("",   description="Human-facing tracking number (generated when empty)")
    patient_id: str                     = Field(...,  description="Patient this referral is for")
    specialist_id: Optional[str]        = Field(None, description="Assigned specialist")
    status: str                         = Field("Pending", description="Status: Pending, Approved, Rejected, Completed, Cancelled")
    urgency: str                        = Field(...,  description="Urgency: low, medium, high, urgent")
    symptoms_description: Optional[str] = Field(None, description="Free-text symptoms; status notes are appended here")
    ai_confidence: float                = Field(0.0,  description="Triage confidence (0 means not assessed yet)")
    estimated_time: Optional[str]       = Field(None, description="Estimated time until the appointment")
    department: Optional[str]           = Field(None, description="Receiving department")
    referring_physician: Optional[str]  = Field(None, description="Name of the referring physician")

    @property
    def is_pending(self) -> bool:
        return self.status.lower() == "pending"

    @property
    def is_approved(self) -> bool:
        return self.status.lower() == "approved"

    @property
    def is_completed(self) -> bool:
        return self.status.lower() == "completed"

    @property
    def is_cancelled(self) -> bool:
        return self.status.lower() == "cancelled"

    @property
    def is_urgent(self) -> bool:
        return self.urgency.lower() in ("urgent", "high")


class Specialist(Entity):
    """
    Specialist directory entry

    languages and insurance are stored comma-joined
    """
    table: ClassVar[str] = "specialists"

    name: str                           = Field(...,  description="Specialist name")
    credentials: Optional[str]          = Field(None, description="Credentials (MD, FACC, ...)")
    specialty: str                      = Field(...,  description="Specialty")
    hospital: str                       = Field(...,  description="Primary hospital")
    profile_image_url: Optional[str]    = Field(None, description="Profile picture location")
    is_available: bool                  = Field(True, description="Whether the specialist accepts referrals")
    rating: float                       = Field(0.0,  description="Average rating (0-5)")
    distance: Optional[str]             = Field(None, description="Display distance")
    languages: List[str]                = Field(default_factory=list, description="Spoken languages")
    insurance: List[str]                = Field(default_factory=list, description="Accepted insurance providers")
    hospital_network: Optional[str]     = Field(None, description="Hospital network")
    success_rate: float                 = Field(0.0,  description="Referral success rate")
    match_reason: Optional[str]         = Field(None, description="Why this specialist was matched")
    latitude: Optional[float]           = Field(None, description="Clinic latitude")
    longitude: Optional[float]          = Field(None, description="Clinic longitude")


class Medication(Entity):
    table: ClassVar[str] = "medications"

    patient_id: str                     = Field(...,  description="Patient taking the medication")
    name: str                           = Field(...,  description="Drug name")
    dosage: str                         = Field(...,  description="Dosage (e.g. '10 mg')")
    frequency: str                      = Field(...,  description="Frequency (e.g. 'twice daily')")
    type: Optional[str]                 = Field(None, description="Medication type")
    status: str                         = Field("Active", description="Status: Active, Paused, Discontinued")
    start_date: Optional[datetime]      = Field(None, description="Start date")
    end_date: Optional[datetime]        = Field(None, description="End date")
    prescribed_by: Optional[str]        = Field(None, description="Prescriber")
    notes: Optional[str]                = Field(None, description="Free-text notes")

    @property
    def is_active(self) -> bool:
        return self.status.lower() == "active"


class Condition(Entity):
    table: ClassVar[str] = "conditions"

    patient_id: str                     = Field(...,  description="Patient with the condition")
    name: str                           = Field(...,  description="Condition name")
    severity: Optional[str]             = Field(None, description="Severity")
    description: Optional[str]          = Field(None, description="Description")
    diagnosed_date: Optional[datetime]  = Field(None, description="Date of diagnosis")
    diagnosed_by: Optional[str]         = Field(None, description="Diagnosing clinician")
    icd10_code: Optional[str]           = Field(None, description="ICD-10 code")
    is_active: bool                     = Field(True, description="Whether the condition is current")


class MedicalHistory(Entity):
    table: ClassVar[str] = "medical_history"

    patient_id: str                     = Field(...,  description="Patient this entry belongs to")
    type: str                           = Field(...,  description="Surgery, Diagnosis, Treatment, Procedure")
    title: str                          = Field(...,  description="Short title")
    description: Optional[str]          = Field(None, description="Details")
    date: datetime                      = Field(...,  description="When it happened")
    provider: Optional[str]             = Field(None, description="Provider")
    location: Optional[str]             = Field(None, description="Location")
    icd10_code: Optional[str]           = Field(None, description="ICD-10 code")


class Appointment(Entity):
    table: ClassVar[str] = "appointments"

    patient_id: str                     = Field(...,  description="Patient attending")
    specialist_id: Optional[str]        = Field(None, description="Specialist seen")
    referral_id: Optional[str]          = Field(None, description="Referral that led to this appointment")
    date: datetime                      = Field(...,  description="Appointment start")
    status: str                         = Field("Scheduled", description="Scheduled, Completed, Cancelled, No-show")
    reason: Optional[str]               = Field(None, description="Reason for the appointment")
    type: Optional[str]                 = Field(None, description="In-person, video, phone")
    duration_minutes: Optional[int]     = Field(None, description="Planned duration in minutes")
    location: Optional[str]             = Field(None, description="Location")
    notes: Optional[str]                = Field(None, description="Free-text notes")


class Message(Entity):
    """
    Secure message between care-team members

    attachments are stored as embedded JSON text (NULL when there are none)
    """
    table: ClassVar[str] = "messages"

    conversation_id: str                = Field(...,  description="Conversation thread")
    sender_id: str                      = Field(...,  description="Sender user ID")
    sender_name: str                    = Field(...,  description="Sender display name")
    sender_avatar: Optional[str]        = Field(None, description="Sender avatar location")
    content: str                        = Field(...,  description="Message body")
    message_type: str                   = Field("text", description="text, voice, attachment, referral_context")
    attachments: List[Dict[str, Any]]   = Field(default_factory=list, description="Attachment descriptors")
    referral_id: Optional[str]          = Field(None, description="Referral this message refers to")
    timestamp: datetime                 = Field(default_factory=datetime.now, description="When the message was sent")
    status: str                         = Field("sent", description="sent, delivered, read")
