# venmito/pipeline.py
"""
Batch orchestration shared by every entity family.

A reconciler walks the uploaded rows in order. Each row is normalized,
matched and written inside its own savepoint and produces either an
``Applied`` or a ``Skipped`` outcome. The whole batch shares one storage
transaction: it is committed at the end unless a fatal storage error was
raised (rollback + re-raise) or the family rejects the result (rollback).
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional, Type, Union

from sqlalchemy.orm import Session

from .errors import RECOVERABLE_ERRORS, is_fatal
from .records import RawRecord

logger = logging.getLogger(__name__)


class SkipReason(str, enum.Enum):
    INVALID_RECORD = "invalid_record"
    PERSON_NOT_FOUND = "person_not_found"
    SENDER_NOT_FOUND = "sender_not_found"
    RECIPIENT_NOT_FOUND = "recipient_not_found"
    DUPLICATE_EXTERNAL_ID = "duplicate_external_id"
    WRITE_FAILED = "write_failed"


@dataclass(frozen=True)
class Applied:
    index: int
    payload: Dict[str, Any]


@dataclass(frozen=True)
class Skipped:
    index: int
    reason: SkipReason
    detail: str = ""
    key: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "reason": self.reason.value, "detail": self.detail, "key": self.key}


RowOutcome = Union[Applied, Skipped]


@dataclass
class BatchReport:
    family: str
    received: int
    outcomes: List[RowOutcome] = field(default_factory=list)
    rejected: bool = False
    message: str = ""
    elapsed_ms: int = 0

    @property
    def successes(self) -> List[Dict[str, Any]]:
        return [o.payload for o in self.outcomes if isinstance(o, Applied)]

    @property
    def skipped(self) -> List[Skipped]:
        return [o for o in self.outcomes if isinstance(o, Skipped)]

    def as_dict(self) -> Dict[str, Any]:
        successes = self.successes
        return {
            "family": self.family,
            "received": self.received,
            "inserted_count": len(successes),
            "skipped_count": len(self.skipped),
            "rejected": self.rejected,
            "message": self.message,
            "elapsed_ms": self.elapsed_ms,
            "successes": successes,
            "skipped": [s.as_dict() for s in self.skipped],
        }


def _brief(exc: BaseException) -> str:
    text = str(exc).strip().splitlines()
    return text[0] if text else exc.__class__.__name__


class Reconciler:
    """
    One instance per batch and family. Subclasses provide `raw_model`,
    `describe()` and `reconcile()`.
    """

    family: ClassVar[str] = ""
    raw_model: ClassVar[Type[RawRecord]]
    # an all-skipped batch is a failure for this family
    reject_empty_result: ClassVar[bool] = False

    def __init__(self, session: Session):
        self.session = session

    # -------- hooks --------

    def normalize(self, raw: Any):
        return self.raw_model.model_validate(raw).to_record()

    def describe(self, record) -> str:
        return ""

    def reconcile(self, index: int, record) -> RowOutcome:  # pragma: no cover - abstract
        raise NotImplementedError

    # -------- orchestration --------

    def run(self, rows: Iterable[Mapping[str, Any]]) -> BatchReport:
        started = perf_counter()
        rows = list(rows)
        report = BatchReport(family=self.family, received=len(rows))
        logger.info("Reconciling %d %s rows", len(rows), self.family)

        try:
            for index, raw in enumerate(rows):
                report.outcomes.append(self._process_row(index, raw))
            self._decide(report)
            if report.rejected:
                self.session.rollback()
            else:
                self.session.commit()
        except Exception:
            self.session.rollback()
            logger.exception(
                "%s batch aborted after %d of %d rows; nothing committed",
                self.family, len(report.outcomes), len(rows),
            )
            raise

        report.elapsed_ms = int((perf_counter() - started) * 1000)
        if report.rejected:
            logger.warning("%s batch rejected: %s", self.family, report.message)
        else:
            logger.info(
                "%s batch committed: %d applied, %d skipped of %d in %dms",
                self.family, len(report.successes), len(report.skipped), len(rows), report.elapsed_ms,
            )
        return report

    def _decide(self, report: BatchReport) -> None:
        if self.reject_empty_result and not report.successes:
            report.rejected = True
            report.message = (
                f"No {self.family} were inserted: all {report.received} rows were skipped"
            )

    def _process_row(self, index: int, raw: Any) -> RowOutcome:
        try:
            record = self.normalize(raw)
        except RECOVERABLE_ERRORS as exc:
            logger.warning("Skipping %s row %d: invalid record (%s)", self.family, index, _brief(exc))
            return Skipped(index, SkipReason.INVALID_RECORD, _brief(exc))

        key = self.describe(record)
        try:
            with self.session.begin_nested():
                outcome = self.reconcile(index, record)
        except RECOVERABLE_ERRORS as exc:
            if is_fatal(exc):
                raise
            logger.warning("Skipping %s row %d (%s): %s", self.family, index, key, _brief(exc))
            return Skipped(index, SkipReason.WRITE_FAILED, _brief(exc), key)

        if isinstance(outcome, Skipped):
            logger.info("Skipping %s row %d (%s): %s", self.family, index, key, outcome.reason.value)
        return outcome
