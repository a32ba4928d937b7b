"""
Tests for soft delete, restore, bulk delete and permanent delete.

These tests verify:
  - Soft-deleted transactions leave listings but stay reachable by id
  - Restore brings them back; both operations check current state
  - Bulk delete is best-effort: good ids succeed, bad ids are reported
  - Bulk delete bounds: empty and >100 ids are rejected, exactly 100 is fine
  - Permanent delete removes the event and its postings
"""

import uuid
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import Update, func, select, update

from ledger.exceptions import InvalidStateError, NotFoundError, ValidationError
from ledger.models import Posting, TransactionEvent
from ledger.services import deletion_service, transaction_service
from ledger.services.query_service import get_transaction_by_id, list_transactions


class TestSoftDelete:
    """Tests for delete_transaction and restore_transaction."""

    async def test_deleted_hidden_from_list_but_found_by_id(self, db_session, make_expense):
        txn = await transaction_service.create_expense(db_session, make_expense())

        await deletion_service.delete_transaction(db_session, txn.id)

        assert await list_transactions(db_session) == []
        fetched = await get_transaction_by_id(db_session, txn.id)
        assert fetched is not None
        assert fetched.deleted_at is not None
        assert len(fetched.postings) == 1

    async def test_delete_twice(self, db_session, make_expense):
        txn = await transaction_service.create_expense(db_session, make_expense())
        await deletion_service.delete_transaction(db_session, txn.id)

        with pytest.raises(InvalidStateError):
            await deletion_service.delete_transaction(db_session, txn.id)

    async def test_delete_unknown(self, db_session, refs):
        with pytest.raises(NotFoundError):
            await deletion_service.delete_transaction(db_session, str(uuid.uuid4()))

    async def test_restore(self, db_session, make_expense):
        txn = await transaction_service.create_expense(db_session, make_expense())
        await deletion_service.delete_transaction(db_session, txn.id)

        restored = await deletion_service.restore_transaction(db_session, txn.id)

        assert restored.id == txn.id
        assert restored.deleted_at is None
        assert [item.id for item in await list_transactions(db_session)] == [txn.id]

    async def test_restore_active_transaction(self, db_session, make_expense):
        txn = await transaction_service.create_expense(db_session, make_expense())

        with pytest.raises(InvalidStateError):
            await deletion_service.restore_transaction(db_session, txn.id)


class TestBulkDelete:
    """Tests for the best-effort bulk delete."""

    async def test_partial_batch(self, db_session, make_expense):
        """3 real ids and 2 unknown ones: 3 deleted, the 2 unknown reported."""
        created = [
            await transaction_service.create_expense(db_session, make_expense())
            for _ in range(3)
        ]
        existing_ids = [txn.id for txn in created]
        missing_ids = [str(uuid.uuid4()), str(uuid.uuid4())]
        ids = [existing_ids[0], missing_ids[0], existing_ids[1], missing_ids[1], existing_ids[2]]

        result = await deletion_service.bulk_delete_transactions(db_session, ids)

        assert result.deleted_count == 3
        assert result.failed_ids == missing_ids
        assert await list_transactions(db_session) == []

    async def test_rerun_reports_everything(self, db_session, make_expense):
        """Running the same batch again deletes nothing and fails every id."""
        created = [
            await transaction_service.create_expense(db_session, make_expense())
            for _ in range(3)
        ]
        ids = [txn.id for txn in created] + [str(uuid.uuid4()), str(uuid.uuid4())]
        await deletion_service.bulk_delete_transactions(db_session, ids)

        result = await deletion_service.bulk_delete_transactions(db_session, ids)

        assert result.deleted_count == 0
        assert result.failed_ids == ids

    async def test_delete_landing_between_classify_and_write(self, db_session, make_expense):
        """
        An id soft-deleted by someone else after classification but before
        the batch UPDATE is reported as failed, not counted as ours.
        """
        created = [
            await transaction_service.create_expense(db_session, make_expense())
            for _ in range(3)
        ]
        ids = [txn.id for txn in created]

        real_execute = db_session.execute
        interleaved = []

        async def execute_after_competing_delete(statement, *args, **kwargs):
            if isinstance(statement, Update) and not interleaved:
                interleaved.append(ids[0])
                await real_execute(
                    update(TransactionEvent)
                    .where(TransactionEvent.id == ids[0])
                    .values(deleted_at=datetime.now(timezone.utc))
                )
            return await real_execute(statement, *args, **kwargs)

        with patch.object(db_session, "execute", new=execute_after_competing_delete):
            result = await deletion_service.bulk_delete_transactions(db_session, ids)

        assert interleaved == [ids[0]]
        assert result.deleted_count == 2
        assert result.failed_ids == [ids[0]]
        assert await list_transactions(db_session) == []

    async def test_failed_ids_keep_request_order(self, db_session, make_expense):
        txn = await transaction_service.create_expense(db_session, make_expense())
        await deletion_service.delete_transaction(db_session, txn.id)

        result = await deletion_service.bulk_delete_transactions(
            db_session, ["zzz", txn.id, "aaa"]
        )
        assert result.failed_ids == ["zzz", txn.id, "aaa"]

    async def test_untouched_transactions_survive(self, db_session, make_expense):
        keep = await transaction_service.create_expense(db_session, make_expense())
        drop = await transaction_service.create_expense(db_session, make_expense())

        await deletion_service.bulk_delete_transactions(db_session, [drop.id])

        assert [item.id for item in await list_transactions(db_session)] == [keep.id]

    async def test_empty_list_rejected(self, db_session, refs):
        with pytest.raises(ValidationError) as exc_info:
            await deletion_service.bulk_delete_transactions(db_session, [])
        assert exc_info.value.field == "ids"

    async def test_over_limit_rejected(self, db_session, refs):
        ids = [str(uuid.uuid4()) for _ in range(101)]
        with pytest.raises(ValidationError):
            await deletion_service.bulk_delete_transactions(db_session, ids)

    async def test_exactly_limit_accepted(self, db_session, refs):
        ids = [str(uuid.uuid4()) for _ in range(100)]

        result = await deletion_service.bulk_delete_transactions(db_session, ids)

        assert result.deleted_count == 0
        assert len(result.failed_ids) == 100

    async def test_empty_string_id_rejected(self, db_session, refs):
        with pytest.raises(ValidationError):
            await deletion_service.bulk_delete_transactions(db_session, [""])


class TestPermanentDelete:
    """Tests for the administrative hard delete."""

    async def test_removes_event_and_postings(self, db_session, make_transfer, make_expense):
        doomed = await transaction_service.create_transfer(db_session, make_transfer())
        kept = await transaction_service.create_expense(db_session, make_expense())

        await deletion_service.permanently_delete_transaction(db_session, doomed.id)

        assert await get_transaction_by_id(db_session, doomed.id) is None
        remaining_postings = (
            await db_session.execute(select(func.count()).select_from(Posting))
        ).scalar()
        assert remaining_postings == 1
        assert await get_transaction_by_id(db_session, kept.id) is not None

    async def test_works_on_soft_deleted(self, db_session, make_expense):
        txn = await transaction_service.create_expense(db_session, make_expense())
        await deletion_service.delete_transaction(db_session, txn.id)

        await deletion_service.permanently_delete_transaction(db_session, txn.id)

        count = (
            await db_session.execute(select(func.count()).select_from(TransactionEvent))
        ).scalar()
        assert count == 0

    async def test_unknown_id(self, db_session, refs):
        with pytest.raises(NotFoundError):
            await deletion_service.permanently_delete_transaction(db_session, "missing")
