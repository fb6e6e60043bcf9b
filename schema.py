"""
Pydantic schemas for parsed transactions and import results.
"""
import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNCATEGORIZED = "Uncategorized"


class Direction(str, Enum):
    INFLOW = "INFLOW"
    OUTFLOW = "OUTFLOW"


class UploadStatus(str, Enum):
    PROCESSING = "PROCESSING"
    IMPORTED = "IMPORTED"
    FAILED = "FAILED"


class ParsedTransaction(BaseModel):
    """One canonical ledger line recovered from a statement, before storage."""

    model_config = ConfigDict(frozen=True)

    date: datetime.date = Field(..., description="Calendar date of the transaction")
    description: str = Field(..., min_length=1, description="Trimmed narration")
    amount_paise: int = Field(..., ge=0, description="Amount in minor units")
    direction: Direction
    raw_row: Dict[str, Any] = Field(default_factory=dict, description="Source row kept for audit")

    @field_validator('description')
    @classmethod
    def strip_description(cls, v):
        """Descriptions are stored trimmed."""
        v = v.strip()
        if not v:
            raise ValueError('Description must not be empty')
        return v


class ImportResult(BaseModel):
    """Counts reported back to the uploader."""

    success: bool = True
    imported: int = Field(0, ge=0)
    skipped: int = Field(0, ge=0)
    total: int = Field(0, ge=0)
    format: str = "csv"
    upload_id: Optional[int] = Field(None, exclude=True)


class CashflowSnapshot(BaseModel):
    """Burn and runway over a trailing window."""

    from_date: datetime.date
    to_date: datetime.date
    inflows_paise: int = 0
    outflows_paise: int = 0
    burn_monthly_paise: int = 0
    runway_months: Optional[float] = None
    cash_on_hand_paise: Optional[int] = None
