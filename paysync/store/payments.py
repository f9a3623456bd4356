"""Payment persistence."""

from sqlalchemy import select

from paysync.core.db import PaymentRow
from paysync.core.models import Payment
from paysync.store.base import Repository


class PaymentRepository(Repository):
    """Insert-only store for extracted payments."""

    def bulk_create(self, payments: list[Payment]) -> None:
        """Insert all payments in a single transaction."""
        if not payments:
            return
        rows = [
            PaymentRow(
                id=payment.id,
                account_id=payment.account_id,
                merchant=payment.merchant,
                description=payment.description,
                amount=payment.amount,
                currency=payment.currency,
                date=payment.date,
                recurrence=payment.recurrence,
                status=payment.status,
                category=payment.category,
                external_reference=payment.external_reference,
                metadata_=payment.metadata,
                raw_llm_response=payment.raw_llm_response,
                created_at=payment.created_at,
                updated_at=payment.updated_at,
            )
            for payment in payments
        ]
        with self._session("create payments") as session:
            session.add_all(rows)

    def list_for_account(self, account_id: str) -> list[Payment]:
        """Return an account's payments, most recent date first."""
        stmt = select(PaymentRow).where(PaymentRow.account_id == account_id).order_by(PaymentRow.date.desc())
        with self._session("list payments") as session:
            return [Payment.model_validate(row) for row in session.scalars(stmt).all()]
