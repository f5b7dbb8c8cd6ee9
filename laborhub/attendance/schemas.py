"""Attendance Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Request  → request bodies (write)
  - *Response → response bodies (read)
"""


import uuid
from datetime import date, datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from laborhub.common.constants import CreatorType, RecordOrigin, ShiftLabel
from laborhub.common.pagination import PaginatedResponse


# ═════════════════════════════════════════════════════════════════════
# Capture metadata
# ═════════════════════════════════════════════════════════════════════


class CaptureMetadata(BaseModel):
    """Opaque capture payload attached to one boundary of a record."""

    image: Optional[str] = Field(None, max_length=500, description="Image reference (URL or key)")
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=1000)

    def as_columns(self, boundary: Literal["step_in", "step_out"]) -> dict[str, Any]:
        """Map onto the ``step_in_*`` / ``step_out_*`` columns."""
        return {
            f"{boundary}_image": self.image,
            f"{boundary}_latitude": self.latitude,
            f"{boundary}_longitude": self.longitude,
            f"{boundary}_address": self.address,
        }


# ═════════════════════════════════════════════════════════════════════
# Step in / out
# ═════════════════════════════════════════════════════════════════════


class StepInRequest(BaseModel):
    """Payload for stepping a worker in."""

    worker_id: uuid.UUID
    manager_id: Optional[uuid.UUID] = Field(
        None, description="Defaults to the worker's own manager",
    )
    shift: Optional[ShiftLabel] = Field(
        None, description="Override; detected from the current time when omitted",
    )
    capture: Optional[CaptureMetadata] = None
    note: Optional[str] = Field(None, max_length=2000)


class StepOutRequest(BaseModel):
    """Payload for stepping a worker out of an open record."""

    record_id: uuid.UUID
    capture: Optional[CaptureMetadata] = None
    note: Optional[str] = Field(None, max_length=2000)


# ═════════════════════════════════════════════════════════════════════
# Attendance record
# ═════════════════════════════════════════════════════════════════════


class AttendanceRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    worker_id: uuid.UUID
    manager_id: uuid.UUID
    step_in: datetime
    step_out: Optional[datetime] = None
    total_minutes: Optional[int] = None
    shift: ShiftLabel
    work_date: date
    origin: RecordOrigin
    note: Optional[str] = None

    step_in_image: Optional[str] = None
    step_in_latitude: Optional[float] = None
    step_in_longitude: Optional[float] = None
    step_in_address: Optional[str] = None
    step_out_image: Optional[str] = None
    step_out_latitude: Optional[float] = None
    step_out_longitude: Optional[float] = None
    step_out_address: Optional[str] = None

    created_by_type: CreatorType
    created_by_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime


class StepInResponse(BaseModel):
    """Created record plus the shift it was filed under and when that shift ends."""

    record: AttendanceRecordResponse
    detected_shift: ShiftLabel
    shift_source: Literal["supplied", "detected"]
    shift_end: datetime


# ═════════════════════════════════════════════════════════════════════
# Correction update
# ═════════════════════════════════════════════════════════════════════


class AttendanceUpdateRequest(BaseModel):
    """Administrative correction. Only fields the client sends are applied."""

    worker_id: Optional[uuid.UUID] = None
    manager_id: Optional[uuid.UUID] = None
    step_in: Optional[datetime] = None
    step_out: Optional[datetime] = None
    total_minutes: Optional[int] = Field(None, ge=0)
    shift: Optional[ShiftLabel] = None
    note: Optional[str] = Field(None, max_length=2000)

    step_in_image: Optional[str] = Field(None, max_length=500)
    step_in_latitude: Optional[float] = Field(None, ge=-90, le=90)
    step_in_longitude: Optional[float] = Field(None, ge=-180, le=180)
    step_in_address: Optional[str] = None
    step_out_image: Optional[str] = Field(None, max_length=500)
    step_out_latitude: Optional[float] = Field(None, ge=-90, le=90)
    step_out_longitude: Optional[float] = Field(None, ge=-180, le=180)
    step_out_address: Optional[str] = None

    @model_validator(mode="after")
    def _required_stay_set(self) -> "AttendanceUpdateRequest":
        for name in ("worker_id", "manager_id", "step_in", "shift"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


# ═════════════════════════════════════════════════════════════════════
# Bulk operations
# ═════════════════════════════════════════════════════════════════════


class BulkStepInRequest(BaseModel):
    shift: ShiftLabel
    capture: Optional[CaptureMetadata] = None
    note: Optional[str] = Field(None, max_length=2000)


class BulkStepInItem(BaseModel):
    worker_id: uuid.UUID
    worker_name: str
    record_id: Optional[uuid.UUID] = None
    error: Optional[str] = None


class BulkStepInSummary(BaseModel):
    total_workers: int
    successful: int
    failed: int
    already_working: int


class BulkStepInResponse(BaseModel):
    """Three disjoint outcome buckets plus their counts."""

    shift: ShiftLabel
    successful: list[BulkStepInItem] = Field(default_factory=list)
    failed: list[BulkStepInItem] = Field(default_factory=list)
    already_working: list[BulkStepInItem] = Field(default_factory=list)
    summary: BulkStepInSummary


class BulkUpdateRequest(BaseModel):
    record_ids: list[uuid.UUID]
    changes: AttendanceUpdateRequest


class BulkUpdateResponse(BaseModel):
    matched_count: int
    worker_ids: list[uuid.UUID]


# ═════════════════════════════════════════════════════════════════════
# Listing / reporting
# ═════════════════════════════════════════════════════════════════════


class AttendanceListResponse(PaginatedResponse[AttendanceRecordResponse]):
    """Paginated attendance records."""


class AttendanceSummaryResponse(BaseModel):
    """Per-shift presence for one local calendar day."""

    date: date
    shift: ShiftLabel
    total_workers: int
    present_workers: int
    summary: str


class DeleteResponse(BaseModel):
    id: uuid.UUID
    worker_id: uuid.UUID
    worker_is_working: bool
