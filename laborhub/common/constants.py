"""Enums and constants for LaborHub attendance — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Shifts ──────────────────────────────────────────────────────────

class ShiftLabel(str, enum.Enum):
    morning = "morning"
    evening = "evening"
    night = "night"


# ── Attendance ──────────────────────────────────────────────────────

class RecordOrigin(str, enum.Enum):
    """How an attendance record came into existence."""

    manual = "manual"
    bulk = "bulk"
    auto = "auto"


class CreatorType(str, enum.Enum):
    """Tag for the polymorphic ``created_by`` reference on a record."""

    admin = "admin"
    manager = "manager"
    worker = "worker"
    system = "system"


# ── Auth / Roles ────────────────────────────────────────────────────

class ActorRole(str, enum.Enum):
    worker = "worker"
    manager = "manager"
    admin = "admin"


# ── Automation ──────────────────────────────────────────────────────

AUTO_CLOSE_MAX_SESSION_HOURS = 8
AUTO_CLOSE_INTERVAL_MINUTES = 30
AUTO_CLOSE_NOTE = f"Auto stepped out after {AUTO_CLOSE_MAX_SESSION_HOURS} hours"
AUTO_OPEN_NOTE = "Auto stepped in for {shift} shift"

# Default step-in addresses for automated records, handed out in rotation
AUTO_OPEN_LOCATIONS: tuple[str, ...] = (
    "Gujari bajar",
    "Dhobi Ghat",
    "Khodiyar nagar parking",
    "Subhash Bridge",
)

BULK_STEP_IN_ADDRESS = "Bulk step-in location"

# ── Misc constants ──────────────────────────────────────────────────

TIMEZONE = "Asia/Kolkata"
FALLBACK_SHIFT_HOURS = 8
MAX_DATE_RANGE_DAYS = 93
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
