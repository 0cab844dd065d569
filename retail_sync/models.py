import enum
import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from retail_sync.errors import ErrorKind


class SubmissionType(str, enum.Enum):
    INVENTORY = "inventory"
    ORDER = "order"
    SETTLEMENT = "settlement"

    @property
    def sessions_table(self) -> str:
        return f"{self.value}_sessions"

    @property
    def items_table(self) -> str:
        if self is SubmissionType.SETTLEMENT:
            return "settlement_values"
        return f"{self.value}_items"

    @property
    def item_key(self) -> str:
        """Column that identifies an item row within its session."""
        if self is SubmissionType.SETTLEMENT:
            return "field_id"
        return "product_id"

    @property
    def items_conflict(self) -> str:
        return f"session_id,{self.item_key}"


SESSION_CONFLICT = "id"


def now_ms() -> int:
    return int(time.time() * 1000)


class SubmissionPayload(BaseModel):
    session: dict[str, Any]
    items: list[dict[str, Any]] = Field(default_factory=list)


class PendingSubmission(BaseModel):
    """A write that has not been confirmed by the hosted database yet."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    id: str
    type: SubmissionType
    store_id: str = Field(alias="storeId")
    session_id: str = Field(alias="sessionId")
    payload: SubmissionPayload
    created_at: int = Field(alias="createdAt")

    @classmethod
    def build(cls, type: SubmissionType | str, store_id: str, session_id: str,
              session: dict[str, Any], items: list[dict[str, Any]], created_at: int | None = None) -> "PendingSubmission":
        submission_type = SubmissionType(type)
        created_at = created_at if created_at is not None else now_ms()
        return cls(
            id=f"{submission_type.value}_{session_id}_{created_at}",
            type=submission_type,
            store_id=store_id,
            session_id=session_id,
            payload=SubmissionPayload(session=session, items=list(items)),
            created_at=created_at,
        )

    def to_record(self) -> dict[str, Any]:
        """Wire form, same field names as the browser-side queue."""
        return self.model_dump(mode="json", by_alias=True)


class SubmitRequest(BaseModel):
    type: SubmissionType
    store_id: str
    session_id: str
    session: dict[str, Any]
    items: list[dict[str, Any]] = Field(default_factory=list)

    def to_pending(self, created_at: int | None = None) -> PendingSubmission:
        return PendingSubmission.build(self.type, self.store_id, self.session_id,
                                       self.session, self.items, created_at=created_at)


class OutcomeKind(str, enum.Enum):
    QUEUED = "queued"
    SYNCED = "synced"
    FAILED = "failed"


class SubmitOutcome(BaseModel):
    kind: OutcomeKind
    reason: ErrorKind | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is not OutcomeKind.FAILED


class DrainResult(BaseModel):
    synced: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.synced + self.failed
