"""
Codec tests - column encoding rules and malformed rows
"""
import pytest

from medrefer.core.errors import CodecError
from medrefer.database.codec import columns, from_row, to_row
from medrefer.database.schemas import Message, Patient, Specialist

from conftest import (
    make_appointment,
    make_condition,
    make_history,
    make_medication,
    make_message,
    make_patient,
    make_referral,
    make_specialist,
)


@pytest.mark.parametrize("factory", [
    make_patient,
    make_referral,
    make_specialist,
    make_medication,
    make_condition,
    make_history,
    make_appointment,
    make_message,
])
def test_rows_decode_to_equal_entities(factory):
    """Test every entity survives to_row/from_row with optional fields unset"""
    entity = factory()
    assert from_row(type(entity), to_row(entity)) == entity


def test_primitive_encodings():
    """Test dates, booleans and lists flatten to primitives"""
    row = to_row(make_specialist(is_available=False))

    assert row["created_at"] == "2024-03-01T09:00:00"
    assert row["is_available"] == 0
    assert row["languages"] == "English,Spanish"
    assert row["latitude"] is None


def test_empty_lists():
    """Test empty string lists become "" and empty JSON lists become NULL"""
    specialist_row = to_row(make_specialist(languages=[], insurance=[]))
    message_row = to_row(make_message())

    assert specialist_row["languages"] == ""
    assert message_row["attachments"] is None
    assert from_row(Specialist, specialist_row).languages == []
    assert from_row(Message, message_row).attachments == []


def test_attachments_stored_as_json():
    """Test structured lists are embedded JSON text"""
    message = make_message(attachments=[{"name": "scan.png", "size": 1024}])
    row = to_row(message)

    assert row["attachments"] == '[{"name": "scan.png", "size": 1024}]'
    assert from_row(Message, row).attachments == message.attachments


def test_columns_follow_model_fields():
    """Test column list matches the model's field order"""
    assert columns(Patient)[:3] == ["id", "created_at", "updated_at"]
    assert "medical_record_number" in columns(Patient)


def test_unknown_column_rejected():
    """Test extra columns are an error, not silently dropped"""
    row = to_row(make_patient())
    row["favourite_colour"] = "green"

    with pytest.raises(CodecError) as exc_info:
        from_row(Patient, row)

    assert exc_info.value.context["columns"] == "favourite_colour"


def test_invalid_value_rejected():
    """Test values pydantic cannot parse raise CodecError"""
    row = to_row(make_patient())
    row["age"] = "forty"

    with pytest.raises(CodecError):
        from_row(Patient, row)


def test_malformed_json_rejected():
    """Test broken embedded JSON raises CodecError"""
    row = to_row(make_message())
    row["attachments"] = "[{not json"

    with pytest.raises(CodecError):
        from_row(Message, row)


@pytest.mark.parametrize("overrides", [
    {"languages": ["English, UK"]},
    {"insurance": [""]},
])
def test_unjoinable_list_items_rejected(overrides):
    """Test items that would not split back apart raise CodecError"""
    with pytest.raises(CodecError) as exc_info:
        to_row(make_specialist(**overrides))

    assert exc_info.value.context["column"] in overrides


def test_list_items_kept_verbatim():
    """Test surrounding whitespace in list items survives the round trip"""
    specialist = make_specialist(languages=[" Spanish", "English "])

    assert from_row(Specialist, to_row(specialist)) == specialist
    assert from_row(Specialist, to_row(specialist)).languages == [" Spanish", "English "]
