from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from dedupe import hash_transaction
from errors import DuplicateTransactionError, NotFoundError, UploadStateError
from schema import UNCATEGORIZED, Direction, ParsedTransaction, UploadStatus


def make_transaction(day=15, description="UPI-SWIGGY-123456", amount_paise=45000, direction=Direction.OUTFLOW):
    return ParsedTransaction(
        date=date(2024, 12, day),
        description=description,
        amount_paise=amount_paise,
        direction=direction,
        raw_row={"date": f"{day}-12-2024"},
    )


def insert(store, user_id, transaction, **kwargs):
    return store.insert_transaction(user_id, transaction, hash_transaction(transaction), **kwargs)


# Uploads


def test_upload_starts_processing(store):
    upload = store.create_upload("user-1", "statement.csv", "bank-statements", "user-1/1-statement.csv")

    stored = store.get_upload(upload.id)
    assert stored.status == UploadStatus.PROCESSING.value
    assert stored.error is None


def test_upload_imported_is_terminal(store):
    upload = store.create_upload("user-1", "statement.csv", "bank-statements", "path")
    store.mark_upload_imported(upload.id)

    with pytest.raises(UploadStateError):
        store.mark_upload_failed(upload.id, "too late")
    assert store.get_upload(upload.id).status == UploadStatus.IMPORTED.value


def test_upload_failed_keeps_message(store):
    upload = store.create_upload("user-1", "statement.csv", "bank-statements", "path")
    store.mark_upload_failed(upload.id, "CSV is empty")

    stored = store.get_upload(upload.id)
    assert stored.status == UploadStatus.FAILED.value
    assert stored.error == "CSV is empty"

    with pytest.raises(UploadStateError):
        store.mark_upload_imported(upload.id)


def test_finishing_unknown_upload(store):
    with pytest.raises(NotFoundError):
        store.mark_upload_imported(999)


# Transactions


def test_insert_and_serialize(store):
    record = insert(store, "user-1", make_transaction(), category="Food")

    assert record.to_dict() == {
        "id": record.id,
        "date": "2024-12-15",
        "description": "UPI-SWIGGY-123456",
        "amountPaise": 45000,
        "direction": "OUTFLOW",
        "category": "Food",
        "dedupeHash": hash_transaction(make_transaction()),
        "rawRowJson": {"date": "15-12-2024"},
        "uploadId": None,
    }


def test_duplicate_hash_rejected_per_user(store):
    insert(store, "user-1", make_transaction())

    with pytest.raises(DuplicateTransactionError):
        insert(store, "user-1", make_transaction())

    insert(store, "user-2", make_transaction())
    assert store.count_transactions("user-1") == 1
    assert store.count_transactions("user-2") == 1


def test_other_integrity_errors_are_not_duplicates(store):
    with pytest.raises(IntegrityError):
        store.insert_transaction("user-1", make_transaction(), dedupe_hash=None)

    assert store.count_transactions("user-1") == 0


def test_create_transaction_defaults_category(store):
    record = store.create_transaction("user-1", make_transaction())
    assert record.category == UNCATEGORIZED


def test_list_transactions_newest_first_with_limit(store):
    for day in (3, 20, 11):
        insert(store, "user-1", make_transaction(day=day))
    insert(store, "user-2", make_transaction(day=25))

    records = store.list_transactions("user-1", limit=2)
    assert [r.date.day for r in records] == [20, 11]


def test_update_recomputes_hash(store):
    record = insert(store, "user-1", make_transaction())

    updated = store.update_transaction("user-1", record.id, description="Swiggy dinner", category="Food")

    assert updated.description == "Swiggy dinner"
    assert updated.category == "Food"
    assert updated.dedupe_hash == hash_transaction(make_transaction(description="Swiggy dinner"))


def test_update_into_existing_hash_is_rejected(store):
    insert(store, "user-1", make_transaction(day=1))
    second = insert(store, "user-1", make_transaction(day=2))

    with pytest.raises(DuplicateTransactionError):
        store.update_transaction("user-1", second.id, transaction_date=date(2024, 12, 1))


def test_update_is_scoped_to_owner(store):
    record = insert(store, "user-1", make_transaction())
    with pytest.raises(NotFoundError):
        store.update_transaction("user-2", record.id, description="stolen")


def test_delete_and_clear(store):
    first = insert(store, "user-1", make_transaction(day=1))
    insert(store, "user-1", make_transaction(day=2))
    insert(store, "user-2", make_transaction(day=3))

    assert store.delete_transaction("user-2", first.id) is False
    assert store.delete_transaction("user-1", first.id) is True
    assert store.clear_transactions("user-1") == 1
    assert store.count_transactions("user-1") == 0
    assert store.count_transactions("user-2") == 1


def test_transactions_between_and_latest_date(store):
    for day in (1, 10, 20):
        insert(store, "user-1", make_transaction(day=day))

    assert store.latest_transaction_date("user-1") == date(2024, 12, 20)
    assert store.latest_transaction_date("nobody") is None

    window = store.transactions_between("user-1", date(2024, 12, 5), date(2024, 12, 20))
    assert sorted(r.date.day for r in window) == [10, 20]


# Cash snapshots


def test_latest_cash_snapshot(store):
    now = datetime.now(timezone.utc)
    store.add_cash_snapshot("user-1", 100000, as_of_date=now - timedelta(days=2))
    store.add_cash_snapshot("user-1", 250000, as_of_date=now)

    assert store.latest_cash_snapshot("user-1").cash_on_hand_paise == 250000
    assert store.latest_cash_snapshot("user-2") is None


def test_negative_cash_rejected(store):
    with pytest.raises(ValueError):
        store.add_cash_snapshot("user-1", -1)
