"""
Table definitions

One table per entity, TEXT primary key "id", ISO-8601 text timestamps.
Foreign keys are documentation only (PRAGMA foreign_keys stays off).
tracking_number and medical_record_number carry UNIQUE constraints so two
racing creates cannot both commit the same key.
"""

SCHEMA = """
CREATE TABLE IF NOT EXISTS patients (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    age INTEGER NOT NULL,
    medical_record_number TEXT UNIQUE NOT NULL,
    date_of_birth TEXT NOT NULL,
    gender TEXT NOT NULL,
    blood_type TEXT,
    phone TEXT,
    email TEXT,
    address TEXT,
    insurance TEXT,
    profile_image_url TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS specialists (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    credentials TEXT,
    specialty TEXT NOT NULL,
    hospital TEXT NOT NULL,
    profile_image_url TEXT,
    is_available INTEGER DEFAULT 1,
    rating REAL DEFAULT 0.0,
    distance TEXT,
    languages TEXT,
    insurance TEXT,
    hospital_network TEXT,
    success_rate REAL DEFAULT 0.0,
    match_reason TEXT,
    latitude REAL,
    longitude REAL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS referrals (
    id TEXT PRIMARY KEY,
    tracking_number TEXT UNIQUE NOT NULL,
    patient_id TEXT NOT NULL,               -- patients.id
    specialist_id TEXT,                     -- specialists.id
    status TEXT NOT NULL DEFAULT 'Pending',
    urgency TEXT NOT NULL,
    symptoms_description TEXT,
    ai_confidence REAL DEFAULT 0.0,
    estimated_time TEXT,
    department TEXT,
    referring_physician TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS medical_history (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    type TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    date TEXT NOT NULL,
    provider TEXT,
    location TEXT,
    icd10_code TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS medications (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    name TEXT NOT NULL,
    dosage TEXT NOT NULL,
    frequency TEXT NOT NULL,
    type TEXT,
    status TEXT DEFAULT 'Active',
    start_date TEXT,
    end_date TEXT,
    prescribed_by TEXT,
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS conditions (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    name TEXT NOT NULL,
    severity TEXT,
    description TEXT,
    diagnosed_date TEXT,
    diagnosed_by TEXT,
    icd10_code TEXT,
    is_active INTEGER DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS appointments (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    specialist_id TEXT,
    referral_id TEXT,
    date TEXT NOT NULL,
    status TEXT DEFAULT 'Scheduled',
    reason TEXT,
    type TEXT,
    duration_minutes INTEGER,
    location TEXT,
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    sender_id TEXT NOT NULL,
    sender_name TEXT NOT NULL,
    sender_avatar TEXT,
    content TEXT NOT NULL,
    message_type TEXT DEFAULT 'text',
    attachments TEXT,                       -- JSON array
    referral_id TEXT,
    timestamp TEXT NOT NULL,
    status TEXT DEFAULT 'sent',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_patients_name ON patients(name);
CREATE INDEX IF NOT EXISTS idx_referrals_patient ON referrals(patient_id);
CREATE INDEX IF NOT EXISTS idx_referrals_specialist ON referrals(specialist_id);
CREATE INDEX IF NOT EXISTS idx_referrals_status ON referrals(status);
CREATE INDEX IF NOT EXISTS idx_referrals_created ON referrals(created_at);
CREATE INDEX IF NOT EXISTS idx_medications_patient ON medications(patient_id);
CREATE INDEX IF NOT EXISTS idx_conditions_patient ON conditions(patient_id);
CREATE INDEX IF NOT EXISTS idx_medical_history_patient ON medical_history(patient_id);
CREATE INDEX IF NOT EXISTS idx_appointments_patient ON appointments(patient_id);
CREATE INDEX IF NOT EXISTS idx_appointments_date ON appointments(date);
CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id);
"""
