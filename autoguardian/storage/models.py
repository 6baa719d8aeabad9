"""
Data models for storage layer.

Defines database entities and data structures.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Optional, Tuple

from autoguardian.core.usage_gate import Tier


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Profile:
    """Account row. Tier and Stripe ids are written only by billing."""
    user_id: str
    email: str
    tier: Tier = Tier.FREE
    access_token: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None


@dataclass(frozen=True)
class UsageRecord:
    """Immutable record of one completed analysis.

    Append-only: once written, rows are never updated or deleted.
    Subclasses name their table and the extra columns they carry.
    """
    table: ClassVar[str] = ""
    columns: ClassVar[Tuple[str, ...]] = ()

    user_id: str
    result: Dict[str, Any]
    vehicle_make: str
    vehicle_model: str
    vehicle_year: Optional[int] = None
    created_at: datetime = field(default_factory=_utcnow)

    def to_row(self) -> Dict[str, Any]:
        """Column/value mapping ready for insertion."""
        row = {
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat(),
            "vehicle_year": self.vehicle_year,
            "vehicle_make": self.vehicle_make,
            "vehicle_model": self.vehicle_model,
            "result": json.dumps(self.result),
        }
        for column in self.columns:
            row[column] = getattr(self, column)
        return row


@dataclass(frozen=True)
class ConsultationRecord(UsageRecord):
    """Symptom analysis. Counted against the free-tier quota."""
    table: ClassVar[str] = "consultations"
    columns: ClassVar[Tuple[str, ...]] = ("vehicle_mileage", "description", "severity")

    vehicle_mileage: Optional[int] = None
    description: str = ""
    severity: Optional[str] = None


@dataclass(frozen=True)
class ObdLookupRecord(UsageRecord):
    table: ClassVar[str] = "obd_lookups"
    columns: ClassVar[Tuple[str, ...]] = ("code", "severity")

    code: str = ""
    severity: Optional[str] = None


@dataclass(frozen=True)
class QuoteCheckRecord(UsageRecord):
    table: ClassVar[str] = "quote_checks"
    columns: ClassVar[Tuple[str, ...]] = (
        "input_type", "quote_text", "overall_verdict", "total_quoted"
    )

    input_type: str = "text"
    quote_text: Optional[str] = None
    overall_verdict: Optional[str] = None
    total_quoted: Optional[float] = None


@dataclass(frozen=True)
class WaitlistEntry:
    email: str
    source: str = "landing"
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "source": self.source,
            "created_at": self.created_at.isoformat(),
        }


RECORD_TYPES = {
    ConsultationRecord.table: ConsultationRecord,
    ObdLookupRecord.table: ObdLookupRecord,
    QuoteCheckRecord.table: QuoteCheckRecord,
}
