# venmito/transfers.py
from __future__ import annotations

from .matching import find_person_by_identifier
from .models import Transfer
from .pipeline import Applied, Reconciler, RowOutcome, Skipped, SkipReason
from .records import RawTransfer, TransferRecord


class TransfersReconciler(Reconciler):
    """Transfers are plain inserts between two known people. No dedup key."""

    family = "transfers"
    raw_model = RawTransfer
    reject_empty_result = True

    def describe(self, record: TransferRecord) -> str:
        return f"sender={record.sender_identifier} recipient={record.recipient_identifier}"

    def reconcile(self, index: int, record: TransferRecord) -> RowOutcome:
        sender = find_person_by_identifier(self.session, record.sender_identifier)
        if sender is None:
            return Skipped(index, SkipReason.SENDER_NOT_FOUND,
                           f"no person with identifier {record.sender_identifier}", self.describe(record))
        recipient = find_person_by_identifier(self.session, record.recipient_identifier)
        if recipient is None:
            return Skipped(index, SkipReason.RECIPIENT_NOT_FOUND,
                           f"no person with identifier {record.recipient_identifier}", self.describe(record))

        transfer = Transfer(sender_id=sender.id, recipient_id=recipient.id, amount=record.amount, date=record.date)
        self.session.add(transfer)
        self.session.flush()

        return Applied(index, {
            "id": transfer.id,
            "sender_id": sender.id,
            "recipient_id": recipient.id,
            "amount": float(record.amount),
            "date": record.date.isoformat(),
        })
