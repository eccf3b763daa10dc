"""
Cached repository tests - cache freshness, invalidation, validation and change events
"""
import asyncio

import pytest

from medrefer.core.errors import DuplicateKeyError, ValidationError
from medrefer.database.cache import CacheState
from medrefer.database.events import ChangeKind
from medrefer.database.query import Where

from conftest import make_patient, make_referral


@pytest.mark.asyncio
async def test_fresh_hit_skips_database(patients, store, clock):
    """Test reads inside the TTL window are served from the cache"""
    patient_id = await patients.create(make_patient())
    store.reset()

    clock.advance(299)
    patient = await patients.get_by_id(patient_id)

    assert patient is not None
    assert patient.name == "Jane Smith"
    assert store.reads == 0


@pytest.mark.asyncio
async def test_stale_entry_is_reread_once(patients, store, clock):
    """Test a stale entry causes exactly one read and restarts the window"""
    patient_id = await patients.create(make_patient())
    store.reset()

    clock.advance(301)
    assert patients.cache_state(patient_id) is CacheState.STALE

    patient = await patients.get_by_id(patient_id)
    assert patient is not None
    assert store.reads == 1
    assert patients.cached_at(patient_id) == clock.now

    await patients.get_by_id(patient_id)
    assert store.reads == 1


@pytest.mark.asyncio
async def test_miss_returns_none(patients, store):
    """Test unknown ids are not an error"""
    assert await patients.get_by_id("missing") is None
    assert patients.cache_state("missing") is CacheState.ABSENT
    assert store.reads == 1


@pytest.mark.asyncio
async def test_full_update_refreshes_cache(patients, store, clock):
    """Test update() writes through and keeps the new copy cached"""
    patient_id = await patients.create(make_patient())
    patient = await patients.get_by_id(patient_id)

    clock.advance(10)
    patient.address = "12 Elm Street"
    assert await patients.update(patient) is True

    store.reset()
    cached = await patients.get_by_id(patient_id)
    assert cached.address == "12 Elm Street"
    assert cached.updated_at == clock.now
    assert store.reads == 0
    assert patient.updated_at != clock.now


@pytest.mark.asyncio
async def test_returned_entity_is_detached_from_cache(patients, store):
    """Test changing a returned patient without update() changes neither cache nor row"""
    patient_id = await patients.create(make_patient())
    patient = await patients.get_by_id(patient_id)

    patient.name = "Never Written"
    store.reset()

    cached = await patients.get_by_id(patient_id)
    assert cached.name == "Jane Smith"
    assert store.reads == 0

    row = await store.query_one("patients", Where.for_id(patient_id))
    assert row["name"] == cached.name


@pytest.mark.asyncio
async def test_created_entity_is_detached_from_cache(patients):
    """Test the object passed to create() is not the cached copy"""
    patient = make_patient()
    patient_id = await patients.create(patient)

    patient.address = "Changed after create"

    assert (await patients.get_by_id(patient_id)).address == make_patient().address


@pytest.mark.asyncio
async def test_rejected_update_keeps_cached_copy(patients, store):
    """Test a failed update leaves the cached patient as last written"""
    patient_id = await patients.create(make_patient())
    patient = await patients.get_by_id(patient_id)

    patient.age = 200
    with pytest.raises(ValidationError):
        await patients.update(patient)

    store.reset()
    assert (await patients.get_by_id(patient_id)).age == 42
    assert store.reads == 0


@pytest.mark.asyncio
async def test_update_of_missing_row_returns_false(patients):
    """Test updating an id that was never stored"""
    assert await patients.update(make_patient()) is False


@pytest.mark.asyncio
async def test_status_update_evicts_cached_referral(referrals, store):
    """Test the next read after a status change goes to the database"""
    referral_id = await referrals.create(make_referral())
    assert referrals.cache_state(referral_id) is CacheState.FRESH

    assert await referrals.update_status(referral_id, "Approved") is True
    assert referrals.cache_state(referral_id) is CacheState.ABSENT

    store.reset()
    referral = await referrals.get_by_id(referral_id)
    assert referral.status == "Approved"
    assert store.reads == 1


@pytest.mark.asyncio
async def test_status_update_appends_notes(referrals, clock):
    """Test status notes land in the symptoms description with a timestamp"""
    referral_id = await referrals.create(make_referral())

    await referrals.update_status(referral_id, "Approved", notes="Seen by triage nurse")

    referral = await referrals.get_by_id(referral_id)
    assert referral.symptoms_description.startswith("Intermittent chest discomfort")
    assert f"[{clock.now.isoformat()}] Status changed to Approved: Seen by triage nurse" in referral.symptoms_description


@pytest.mark.asyncio
async def test_status_update_rejects_unknown_status(referrals, store):
    """Test update_status validates the new status before writing"""
    referral_id = await referrals.create(make_referral())
    store.reset()

    with pytest.raises(ValidationError):
        await referrals.update_status(referral_id, "Lost")

    assert store.operations == []


@pytest.mark.asyncio
async def test_status_update_of_missing_referral(referrals):
    """Test status change on an unknown id returns False"""
    assert await referrals.update_status("missing", "Approved") is False
    assert referrals.total_status_updates == 0


@pytest.mark.asyncio
async def test_duplicate_tracking_number_rejected(referrals):
    """Test a taken tracking number is refused and nothing is added"""
    await referrals.create(make_referral(tracking_number="REF-1234567-4567"))

    with pytest.raises(DuplicateKeyError):
        await referrals.create(make_referral(tracking_number="REF-1234567-4567"))

    assert await referrals.count() == 1


@pytest.mark.asyncio
async def test_duplicate_tracking_number_rejected_after_cache_clear(referrals):
    """Test the duplicate check falls back to the database"""
    await referrals.create(make_referral(tracking_number="REF-1234567-4567"))
    referrals.clear_cache()

    with pytest.raises(DuplicateKeyError):
        await referrals.create(make_referral(tracking_number="REF-1234567-4567"))


@pytest.mark.asyncio
async def test_racing_creates_commit_one_tracking_number(referrals):
    """Test two concurrent creates with one tracking number: exactly one wins"""
    results = await asyncio.gather(
        referrals.create(make_referral(tracking_number="REF-7654321-4321")),
        referrals.create(make_referral(tracking_number="REF-7654321-4321")),
        return_exceptions=True,
    )

    errors = [result for result in results if isinstance(result, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], DuplicateKeyError)
    assert await referrals.count() == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides", [
    {"urgency": "extreme"},
    {"status": "Lost"},
    {"department": ""},
    {"symptoms_description": "   "},
    {"patient_id": ""},
])
async def test_invalid_referral_never_reaches_store(referrals, store, overrides):
    """Test validation failures happen before any insert"""
    with pytest.raises(ValidationError):
        await referrals.create(make_referral(**overrides))

    assert store.inserts == 0


@pytest.mark.asyncio
async def test_invalid_full_update_leaves_row_alone(referrals, store):
    """Test update() validates before writing"""
    referral_id = await referrals.create(make_referral())
    referral = await referrals.get_by_id(referral_id)
    store.reset()

    referral.urgency = "whenever"
    with pytest.raises(ValidationError):
        await referrals.update(referral)

    assert store.operations == []


@pytest.mark.asyncio
async def test_writes_without_subscribers(patients, store):
    """Test events are dropped silently and no listing query runs"""
    patient_id = await patients.create(make_patient())
    assert store.operations == ["query", "insert into patients"]

    patient = await patients.get_by_id(patient_id)
    patient.age = 43
    assert await patients.update(patient) is True
    assert await patients.delete(patient_id) is True
    await patients.flush_listing()

    assert store.reads == 1


@pytest.mark.asyncio
async def test_events_follow_write_order(referrals):
    """Test subscribers see created, status-changed, updated, deleted in order"""
    subscription = referrals.events.subscribe()

    referral_id = await referrals.create(make_referral())
    await referrals.update_status(referral_id, "Approved")
    referral = await referrals.get_by_id(referral_id)
    referral.department = "Neurology"
    await referrals.update(referral)
    await referrals.delete(referral_id)

    kinds = []
    while subscription.pending():
        event = subscription.get_nowait()
        assert event.entity_id == referral_id
        kinds.append(event.kind)
        if event.kind is ChangeKind.STATUS_CHANGED:
            assert event.new_status == "Approved"

    assert kinds == [
        ChangeKind.CREATED,
        ChangeKind.STATUS_CHANGED,
        ChangeKind.UPDATED,
        ChangeKind.DELETED,
    ]


@pytest.mark.asyncio
async def test_late_subscriber_sees_no_replay(patients):
    """Test a subscriber only receives events published after subscribing"""
    await patients.create(make_patient())

    subscription = patients.events.subscribe()
    assert subscription.pending() == 0

    await patients.create(make_patient(medical_record_number="MRN-2002"))
    event = subscription.get_nowait()
    assert event.kind is ChangeKind.CREATED
    assert event.entity.medical_record_number == "MRN-2002"


@pytest.mark.asyncio
async def test_listing_pushed_after_write(patients):
    """Test listing subscribers receive the refreshed listing"""
    subscription = patients.listings.subscribe()

    await patients.create(make_patient())
    await patients.flush_listing()

    listing = subscription.get_nowait()
    assert [patient.name for patient in listing] == ["Jane Smith"]


@pytest.mark.asyncio
async def test_delete_evicts_and_returns_none(patients, store):
    """Test get_by_id after delete reads the database and finds nothing"""
    patient_id = await patients.create(make_patient())
    assert await patients.delete(patient_id) is True
    assert await patients.delete(patient_id) is False

    store.reset()
    assert await patients.get_by_id(patient_id) is None
    assert store.reads == 1


@pytest.mark.asyncio
async def test_clear_cache_does_not_touch_database(patients, store):
    """Test clearing the cache only forces re-reads"""
    patient_id = await patients.create(make_patient())
    store.reset()

    patients.clear_cache()
    assert store.operations == []

    assert await patients.get_by_id(patient_id) is not None
    assert store.reads == 1


@pytest.mark.asyncio
async def test_create_many_clears_cache_and_publishes(patients):
    """Test batch insert publishes one created event per entity"""
    existing_id = await patients.create(make_patient())
    subscription = patients.events.subscribe()

    inserted = await patients.create_many([
        make_patient(medical_record_number="MRN-2002", name="Ann Lee"),
        make_patient(medical_record_number="MRN-2003", name="Bo Chen"),
    ])

    assert inserted == 2
    assert patients.cache_state(existing_id) is CacheState.ABSENT
    assert subscription.pending() == 2
    assert await patients.count() == 3


@pytest.mark.asyncio
async def test_create_many_validates_everything_first(patients, store):
    """Test one invalid entity aborts the whole batch before any write"""
    with pytest.raises(ValidationError):
        await patients.create_many([
            make_patient(medical_record_number="MRN-2002"),
            make_patient(medical_record_number="MRN-2003", age=200),
        ])

    assert store.inserts == 0
    assert await patients.count() == 0


@pytest.mark.asyncio
async def test_export_then_import(patients, store, clock):
    """Test a JSON export can be imported into another database"""
    await patients.create(make_patient())
    await patients.create(make_patient(medical_record_number="MRN-2002", name="Ann Lee"))
    payload = await patients.export_json()

    await store.delete("patients", Where().like("id", "%"))
    patients.clear_cache()

    assert await patients.import_json(payload) == 2
    # Second import collides on every MRN and is skipped row by row
    assert await patients.import_json(payload) == 0
    assert await patients.count() == 2
