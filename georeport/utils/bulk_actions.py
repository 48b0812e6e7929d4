"""Sequential bulk mutations with a per-record outcome.

Every selected record gets its own mutation call, in order, one after the
other. A failing call never stops the loop and never undoes the records that
were already updated: its error is logged and reported in the result for that
record only.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Generic, Iterable, List, Optional, Sequence, TypeVar

from fastapi import HTTPException
from pydantic import BaseModel

from georeport.logging_utils import get_logger
from georeport.utils.bulk_selection import item_id

logger = get_logger(__name__)

T = TypeVar("T")


class BulkActionType(str, Enum):
    delete = "delete"
    toggle_status = "toggle_status"
    change_category = "change_category"
    change_estado = "change_estado"
    change_assignment = "change_assignment"
    mark_read = "mark_read"


class BulkActionState(str, Enum):
    idle = "idle"
    confirming = "confirming"
    processing = "processing"


class BulkActionError(RuntimeError):
    pass


class BulkItemResult(BaseModel):
    id: str
    ok: bool
    error: Optional[str] = None


class BulkResult(BaseModel):
    action: BulkActionType
    entity: str
    results: List[BulkItemResult]
    succeeded: int
    failed: int
    message: str


def describe_error(exc: Exception) -> str:
    if isinstance(exc, HTTPException):
        return str(exc.detail)
    return str(exc) or exc.__class__.__name__


class BulkActionRunner(Generic[T]):
    """Drives one bulk action through ``idle -> confirming -> processing -> idle``."""

    def __init__(self, action: BulkActionType, entity: str):
        self.action = action
        self.entity = entity
        self.state = BulkActionState.idle
        self._records: List[T] = []
        self._missing: List[str] = []

    @property
    def records(self) -> List[T]:
        return list(self._records)

    def prepare(self, records: Sequence[T], missing_ids: Iterable[str] = ()) -> None:
        if self.state != BulkActionState.idle:
            raise BulkActionError(f"Cannot prepare a bulk action while {self.state.value}")

        self._records = list(records)
        self._missing = [str(i) for i in missing_ids]
        self.state = BulkActionState.confirming

    def cancel(self) -> None:
        if self.state == BulkActionState.processing:
            raise BulkActionError("Cannot cancel a bulk action that is already processing")

        self._records = []
        self._missing = []
        self.state = BulkActionState.idle

    def run(
        self,
        mutation: Callable[[T], None],
        on_failure: Optional[Callable[[], None]] = None,
    ) -> BulkResult:
        if self.state != BulkActionState.confirming:
            raise BulkActionError(f"Cannot run a bulk action while {self.state.value}")

        self.state = BulkActionState.processing
        results: List[BulkItemResult] = []

        try:
            for record in self._records:
                record_id = item_id(record)
                try:
                    mutation(record)
                except Exception as exc:
                    logger.error(
                        "Bulk %s failed for %s %s: %s",
                        self.action.value, self.entity, record_id, exc,
                    )
                    if on_failure is not None:
                        on_failure()
                    results.append(BulkItemResult(id=record_id, ok=False, error=describe_error(exc)))
                else:
                    results.append(BulkItemResult(id=record_id, ok=True))

            for missing_id in self._missing:
                results.append(BulkItemResult(id=missing_id, ok=False, error="Record not found"))
        finally:
            self._records = []
            self._missing = []
            self.state = BulkActionState.idle

        succeeded = sum(1 for r in results if r.ok)
        failed = len(results) - succeeded

        logger.info(
            "Bulk %s on %s finished: %d succeeded, %d failed",
            self.action.value, self.entity, succeeded, failed,
        )

        return BulkResult(
            action=self.action,
            entity=self.entity,
            results=results,
            succeeded=succeeded,
            failed=failed,
            message=f"{self.action.value} applied to {succeeded} of {len(results)} {self.entity}",
        )
