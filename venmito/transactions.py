# venmito/transactions.py
from __future__ import annotations

import logging

from .associations import attach_transaction_items
from .matching import find_person_by_phone, find_transaction_by_external_id
from .models import Transaction
from .pipeline import Applied, Reconciler, RowOutcome, Skipped, SkipReason
from .records import RawTransaction, TransactionRecord

logger = logging.getLogger(__name__)


class TransactionsReconciler(Reconciler):
    """
    Store transactions matched to a person by phone. A transaction whose
    external id is already stored is skipped as a whole, items included.
    """

    family = "transactions"
    raw_model = RawTransaction

    def describe(self, record: TransactionRecord) -> str:
        return f"external_id={record.external_id or '-'} phone={record.phone or '-'}"

    def reconcile(self, index: int, record: TransactionRecord) -> RowOutcome:
        person = find_person_by_phone(self.session, record.phone)
        if person is None:
            return Skipped(index, SkipReason.PERSON_NOT_FOUND, "no person with this phone", self.describe(record))

        if find_transaction_by_external_id(self.session, record.external_id) is not None:
            return Skipped(index, SkipReason.DUPLICATE_EXTERNAL_ID,
                           f"transaction {record.external_id} already stored", self.describe(record))

        txn = Transaction(
            external_id=record.external_id,
            person_id=person.id,
            phone=record.phone,
            store=record.store,
            transaction_date=record.transaction_date,
            total_amount=record.total_amount,
        )
        self.session.add(txn)
        self.session.flush()

        attached = attach_transaction_items(self.session, txn, record.items)
        if attached < len(record.items):
            logger.info("Transaction %s kept with %d of %d items", txn.id, attached, len(record.items))

        return Applied(index, {
            "id": txn.id,
            "external_id": txn.external_id,
            "person_id": person.id,
            "store": txn.store,
            "transaction_date": txn.transaction_date.isoformat(),
            "total_amount": float(record.total_amount),
            "items_attached": attached,
        })
