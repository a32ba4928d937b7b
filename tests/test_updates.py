"""
Tests for the partial update command handlers.

These tests verify:
  - Only the fields sent are changed; explicit null clears a field
  - Amount changes re-sign every posting per the kind's convention
  - Changed references are re-validated
  - Deleted transactions and wrong-kind updaters are rejected
  - A transfer can never end up with the same wallet on both legs
"""

from datetime import datetime, timezone

import pytest

from ledger.exceptions import InvalidStateError, NotFoundError, ValidationError
from ledger.schemas.transaction import SAME_WALLET_MESSAGE
from ledger.services import deletion_service, transaction_service


class TestExpenseUpdate:
    """Tests for update_expense."""

    async def test_amount_only(self, db_session, refs, make_expense):
        """Changing the amount re-signs the posting and leaves the rest alone."""
        txn = await transaction_service.create_expense(
            db_session, make_expense(note="lunch", payee="Warung")
        )

        updated = await transaction_service.update_expense(
            db_session, txn.id, {"amount_idr": 40_000}
        )

        assert updated.id == txn.id
        assert updated.postings[0].amount_idr == -40_000
        assert updated.postings[0].wallet_id == refs["wallet"]
        assert updated.note == "lunch"
        assert updated.payee == "Warung"
        assert updated.category_id == refs["expense_category"]
        assert updated.occurred_at == txn.occurred_at

    async def test_explicit_null_clears_note(self, db_session, make_expense):
        txn = await transaction_service.create_expense(
            db_session, make_expense(note="lunch", payee="Warung")
        )

        updated = await transaction_service.update_expense(
            db_session, txn.id, {"note": None}
        )

        assert updated.note is None
        assert updated.payee == "Warung"

    async def test_move_to_other_wallet(self, db_session, refs, make_expense):
        txn = await transaction_service.create_expense(db_session, make_expense())

        updated = await transaction_service.update_expense(
            db_session, txn.id, {"wallet_id": refs["other_wallet"]}
        )

        assert updated.postings[0].wallet_id == refs["other_wallet"]
        assert updated.postings[0].amount_idr == -25_000

    async def test_occurred_at_normalised_to_utc(self, db_session, make_expense):
        txn = await transaction_service.create_expense(db_session, make_expense())

        updated = await transaction_service.update_expense(
            db_session, txn.id, {"occurred_at": "2026-04-01T09:00:00+07:00"}
        )

        assert updated.occurred_at == datetime(2026, 4, 1, 2, 0, tzinfo=timezone.utc)

    async def test_income_category_rejected(self, db_session, refs, make_expense):
        txn = await transaction_service.create_expense(db_session, make_expense())

        with pytest.raises(ValidationError) as exc_info:
            await transaction_service.update_expense(
                db_session, txn.id, {"category_id": refs["income_category"]}
            )
        assert exc_info.value.field == "category_id"

    async def test_category_cannot_be_cleared(self, db_session, make_expense):
        """Expenses always carry a category."""
        txn = await transaction_service.create_expense(db_session, make_expense())

        with pytest.raises(ValidationError):
            await transaction_service.update_expense(
                db_session, txn.id, {"category_id": None}
            )

    async def test_archived_wallet_rejected(self, db_session, refs, make_expense):
        txn = await transaction_service.create_expense(db_session, make_expense())

        with pytest.raises(NotFoundError):
            await transaction_service.update_expense(
                db_session, txn.id, {"wallet_id": refs["archived_wallet"]}
            )

    async def test_amount_below_minimum_rejected(self, db_session, make_expense):
        txn = await transaction_service.create_expense(db_session, make_expense())

        with pytest.raises(ValidationError) as exc_info:
            await transaction_service.update_expense(
                db_session, txn.id, {"amount_idr": 50}
            )
        assert exc_info.value.field == "amount_idr"


class TestIncomeUpdate:
    """Tests for update_income."""

    async def test_clear_category(self, db_session, make_income):
        txn = await transaction_service.create_income(db_session, make_income())
        assert txn.category_id is not None

        updated = await transaction_service.update_income(
            db_session, txn.id, {"category_id": None}
        )

        assert updated.category_id is None
        assert updated.category_name is None
        assert updated.postings[0].amount_idr == 500_000

    async def test_amount_stays_positive(self, db_session, make_income):
        txn = await transaction_service.create_income(db_session, make_income())

        updated = await transaction_service.update_income(
            db_session, txn.id, {"amount_idr": 750_000}
        )
        assert updated.postings[0].amount_idr == 750_000


class TestUpdatePreconditions:
    """Tests for missing, deleted and wrong-kind transactions."""

    async def test_unknown_id(self, db_session, refs):
        with pytest.raises(NotFoundError):
            await transaction_service.update_expense(
                db_session, "missing-id", {"note": "x"}
            )

    async def test_wrong_kind(self, db_session, make_expense):
        """Calling the income updater on an expense is caller misuse."""
        txn = await transaction_service.create_expense(db_session, make_expense())

        with pytest.raises(InvalidStateError) as exc_info:
            await transaction_service.update_income(
                db_session, txn.id, {"note": "x"}
            )
        assert exc_info.value.detail == "Transaction is not an income"

    async def test_deleted_transaction(self, db_session, make_expense):
        txn = await transaction_service.create_expense(db_session, make_expense())
        await deletion_service.delete_transaction(db_session, txn.id)

        with pytest.raises(InvalidStateError) as exc_info:
            await transaction_service.update_expense(
                db_session, txn.id, {"amount_idr": 1_000}
            )
        assert "deleted" in exc_info.value.detail

    async def test_unknown_field_rejected(self, db_session, make_expense):
        txn = await transaction_service.create_expense(db_session, make_expense())

        with pytest.raises(ValidationError):
            await transaction_service.update_expense(
                db_session, txn.id, {"bucket_id": "x"}
            )


class TestTransferUpdate:
    """Tests for update_transfer."""

    async def test_amount_keeps_legs_balanced(self, db_session, refs, make_transfer):
        txn = await transaction_service.create_transfer(db_session, make_transfer())

        updated = await transaction_service.update_transfer(
            db_session, txn.id, {"amount_idr": 120_000}
        )

        by_amount = {p.amount_idr: p.wallet_id for p in updated.postings}
        assert by_amount == {-120_000: refs["wallet"], 120_000: refs["other_wallet"]}

    async def test_to_wallet_onto_existing_from_wallet(self, db_session, refs, make_transfer):
        """
        Changing only the destination to the stored source fails, even though
        the source was not part of the call.
        """
        txn = await transaction_service.create_transfer(db_session, make_transfer())

        with pytest.raises(ValidationError) as exc_info:
            await transaction_service.update_transfer(
                db_session, txn.id, {"to_wallet_id": refs["wallet"]}
            )
        assert exc_info.value.detail == SAME_WALLET_MESSAGE
        assert exc_info.value.field == "to_wallet_id"

    async def test_from_wallet_onto_existing_to_wallet(self, db_session, refs, make_transfer):
        txn = await transaction_service.create_transfer(db_session, make_transfer())

        with pytest.raises(ValidationError) as exc_info:
            await transaction_service.update_transfer(
                db_session, txn.id, {"from_wallet_id": refs["other_wallet"]}
            )
        assert exc_info.value.field == "from_wallet_id"

    async def test_swap_both_wallets(self, db_session, refs, make_transfer):
        txn = await transaction_service.create_transfer(db_session, make_transfer())

        updated = await transaction_service.update_transfer(
            db_session,
            txn.id,
            {"from_wallet_id": refs["other_wallet"], "to_wallet_id": refs["wallet"]},
        )

        by_amount = {p.amount_idr: p.wallet_id for p in updated.postings}
        assert by_amount == {-75_000: refs["other_wallet"], 75_000: refs["wallet"]}

    async def test_archived_destination_rejected(self, db_session, refs, make_transfer):
        txn = await transaction_service.create_transfer(db_session, make_transfer())

        with pytest.raises(NotFoundError) as exc_info:
            await transaction_service.update_transfer(
                db_session, txn.id, {"to_wallet_id": refs["archived_wallet"]}
            )
        assert "To wallet" in exc_info.value.detail


class TestSavingsUpdate:
    """Tests for the savings updaters."""

    async def test_contribution_amount_and_note(self, db_session, refs, make_savings):
        txn = await transaction_service.create_savings_contribution(
            db_session, make_savings()
        )

        updated = await transaction_service.update_savings_contribution(
            db_session, txn.id, {"amount_idr": 300_000, "note": "bonus month"}
        )

        legs = {(p.wallet_id, p.savings_bucket_id): p.amount_idr for p in updated.postings}
        assert legs == {
            (refs["wallet"], None): -300_000,
            (None, refs["bucket"]): 300_000,
        }
        assert updated.note == "bonus month"

    async def test_withdrawal_to_other_wallet(self, db_session, refs, make_savings):
        txn = await transaction_service.create_savings_withdrawal(
            db_session, make_savings()
        )

        updated = await transaction_service.update_savings_withdrawal(
            db_session, txn.id, {"wallet_id": refs["other_wallet"]}
        )

        legs = {(p.wallet_id, p.savings_bucket_id): p.amount_idr for p in updated.postings}
        assert legs == {
            (None, refs["bucket"]): -200_000,
            (refs["other_wallet"], None): 200_000,
        }

    async def test_archived_bucket_rejected(self, db_session, refs, make_savings):
        txn = await transaction_service.create_savings_contribution(
            db_session, make_savings()
        )

        with pytest.raises(NotFoundError):
            await transaction_service.update_savings_contribution(
                db_session, txn.id, {"bucket_id": refs["archived_bucket"]}
            )

    async def test_contribution_updater_on_withdrawal(self, db_session, make_savings):
        txn = await transaction_service.create_savings_withdrawal(
            db_session, make_savings()
        )

        with pytest.raises(InvalidStateError):
            await transaction_service.update_savings_contribution(
                db_session, txn.id, {"amount_idr": 1_000}
            )
