"""
Recurring Charge and Price Drift Models.

This module provides Pydantic models for recurring charge detection and
price drift tracking: detector candidates, persisted recurring charges,
price change events and the derived drift metrics.
"""

import uuid
import logging
from typing import Optional, List, Dict, Any
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing_extensions import Self

from models.merchant import Merchant
from models.transaction import Transaction

logger = logging.getLogger(__name__)

# Constants
TIMESTAMP_ERROR_MESSAGE = "Timestamp must be a positive integer representing milliseconds since epoch"
CONFIDENCE_ERROR_MESSAGE = "Confidence must be between 0 and 1"


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class RecurrenceFrequency(str, Enum):
    """Frequency of recurring charges."""
    WEEKLY = "weekly"          # 5-9 day intervals
    BIWEEKLY = "biweekly"      # 12-16 day intervals
    MONTHLY = "monthly"        # 27-35 day intervals
    QUARTERLY = "quarterly"    # 85-100 day intervals
    YEARLY = "yearly"          # 355-375 day intervals


class RecurringChargeCandidate(BaseModel):
    """
    Detector output for one merchant group that looks recurring.

    Candidates are not persisted directly; they are upserted into
    RecurringCharge records keyed on (user, merchant, frequency).
    """
    merchant_id: uuid.UUID = Field(alias="merchantId")
    frequency: RecurrenceFrequency
    confidence: Decimal = Field(ge=0, le=1)
    first_amount: Decimal = Field(alias="firstAmount")
    current_amount: Decimal = Field(alias="currentAmount")
    first_seen_at: date = Field(alias="firstSeenAt")
    last_seen_at: date = Field(alias="lastSeenAt")
    transaction_count: int = Field(alias="transactionCount", ge=0)

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_encoders={
            Decimal: str,
            uuid.UUID: str
        },
        use_enum_values=False
    )


class RecurringCharge(BaseModel):
    """
    A persisted recurring relationship between a user and a merchant.

    There is exactly one charge per (user, merchant, frequency); reruns of
    detection update it in place.
    """
    recurring_charge_id: uuid.UUID = Field(default_factory=uuid.uuid4, alias="recurringChargeId")
    user_id: str = Field(alias="userId")
    merchant_id: uuid.UUID = Field(alias="merchantId")
    frequency: RecurrenceFrequency
    confidence: Decimal = Field(ge=0, le=1)
    first_amount: Decimal = Field(alias="firstAmount")
    current_amount: Decimal = Field(alias="currentAmount")
    first_seen_at: date = Field(alias="firstSeenAt")
    last_seen_at: date = Field(alias="lastSeenAt")
    transaction_count: int = Field(default=0, alias="transactionCount", ge=0)
    is_active: bool = Field(default=True, alias="isActive")
    created_at: int = Field(default_factory=_now_ms, alias="createdAt")
    updated_at: int = Field(default_factory=_now_ms, alias="updatedAt")

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={
            Decimal: str,
            uuid.UUID: str
        },
        use_enum_values=False
    )

    @field_validator('created_at', 'updated_at')
    @classmethod
    def check_positive_timestamp(cls, v: int) -> int:
        if v < 0:
            raise ValueError(TIMESTAMP_ERROR_MESSAGE)
        return v

    @field_validator('confidence', mode='before')
    @classmethod
    def validate_confidence(cls, v: Any) -> Decimal:
        value = v if isinstance(v, Decimal) else Decimal(str(v))
        if not (Decimal("0") <= value <= Decimal("1")):
            raise ValueError(CONFIDENCE_ERROR_MESSAGE)
        return value

    @property
    def charge_key(self) -> str:
        """Sort key identifying the (merchant, frequency) pair within a user."""
        return f"{self.merchant_id}#{self.frequency.value}"

    @classmethod
    def from_candidate(cls, user_id: str, candidate: RecurringChargeCandidate) -> Self:
        return cls(
            user_id=user_id,
            merchant_id=candidate.merchant_id,
            frequency=candidate.frequency,
            confidence=candidate.confidence,
            first_amount=candidate.first_amount,
            current_amount=candidate.current_amount,
            first_seen_at=candidate.first_seen_at,
            last_seen_at=candidate.last_seen_at,
            transaction_count=candidate.transaction_count,
        )

    def advance_to(self, amount: Decimal, seen_at: date) -> bool:
        """
        Move the current amount and last-seen date forward to a newer charge.
        Returns True if any fields were changed, False otherwise.
        """
        changed = False
        if self.current_amount != amount:
            self.current_amount = amount
            changed = True
        if self.last_seen_at != seen_at:
            self.last_seen_at = seen_at
            changed = True
        if changed:
            self.updated_at = _now_ms()
        return changed

    def to_dynamodb_item(self) -> Dict[str, Any]:
        """Convert to DynamoDB item format."""
        data = self.model_dump(by_alias=True, exclude_none=True)

        for key, value in data.items():
            if isinstance(value, uuid.UUID):
                data[key] = str(value)

        data['frequency'] = self.frequency.value
        data['firstSeenAt'] = self.first_seen_at.isoformat()
        data['lastSeenAt'] = self.last_seen_at.isoformat()
        data['chargeKey'] = self.charge_key

        # DynamoDB GSIs require string types for boolean attributes
        data['isActive'] = 'true' if self.is_active else 'false'
        return data

    @classmethod
    def from_dynamodb_item(cls, data: Dict[str, Any]) -> Self:
        """Create from DynamoDB item data."""
        converted_data = data.copy()
        converted_data.pop('chargeKey', None)

        for field in ('transactionCount', 'createdAt', 'updatedAt'):
            if isinstance(converted_data.get(field), Decimal):
                converted_data[field] = int(converted_data[field])

        for field in ('recurringChargeId', 'merchantId'):
            if isinstance(converted_data.get(field), str):
                converted_data[field] = uuid.UUID(converted_data[field])

        if isinstance(converted_data.get('frequency'), str):
            converted_data['frequency'] = RecurrenceFrequency(converted_data['frequency'])

        if isinstance(converted_data.get('isActive'), str):
            converted_data['isActive'] = converted_data['isActive'].lower() == 'true'

        return cls.model_validate(converted_data)


class PriceChangeEvent(BaseModel):
    """
    A single observed change in a recurring charge's amount between two
    consecutive transactions. Immutable once written; the idempotency key is
    (recurring_charge_id, detected_at).
    """
    price_change_id: uuid.UUID = Field(default_factory=uuid.uuid4, alias="priceChangeId")
    recurring_charge_id: uuid.UUID = Field(alias="recurringChargeId")
    user_id: str = Field(alias="userId")
    merchant_id: uuid.UUID = Field(alias="merchantId")
    previous_amount: Decimal = Field(alias="previousAmount")
    new_amount: Decimal = Field(alias="newAmount")
    change_amount: Decimal = Field(alias="changeAmount")
    change_percent: Decimal = Field(alias="changePercent")
    detected_at: date = Field(alias="detectedAt")
    transaction_id: Optional[uuid.UUID] = Field(default=None, alias="transactionId")
    created_at: int = Field(default_factory=_now_ms, alias="createdAt")

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_encoders={
            Decimal: str,
            uuid.UUID: str
        },
    )

    def to_dynamodb_item(self) -> Dict[str, Any]:
        """Convert to DynamoDB item format."""
        data = self.model_dump(by_alias=True, exclude_none=True)

        for key, value in data.items():
            if isinstance(value, uuid.UUID):
                data[key] = str(value)

        data['detectedAt'] = self.detected_at.isoformat()
        return data

    @classmethod
    def from_dynamodb_item(cls, data: Dict[str, Any]) -> Self:
        """Create from DynamoDB item data."""
        converted_data = data.copy()

        if isinstance(converted_data.get('createdAt'), Decimal):
            converted_data['createdAt'] = int(converted_data['createdAt'])

        for field in ('priceChangeId', 'recurringChargeId', 'merchantId', 'transactionId'):
            if isinstance(converted_data.get(field), str):
                converted_data[field] = uuid.UUID(converted_data[field])

        return cls.model_validate(converted_data)


class DriftMetrics(BaseModel):
    """Drift of a recurring charge between its first and current amounts."""
    total_change: Decimal = Field(alias="totalChange")
    percent_change: Decimal = Field(alias="percentChange")
    annualized_increase: Decimal = Field(alias="annualizedIncrease")
    months_tracked: int = Field(alias="monthsTracked", ge=0)

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_encoders={Decimal: str},
    )


class PriceDriftSummary(BaseModel):
    """One row of the per-user drift report."""
    recurring_charge_id: uuid.UUID = Field(alias="recurringChargeId")
    merchant_id: uuid.UUID = Field(alias="merchantId")
    merchant_name: str = Field(alias="merchantName")
    frequency: RecurrenceFrequency
    first_amount: Decimal = Field(alias="firstAmount")
    current_amount: Decimal = Field(alias="currentAmount")
    first_seen_at: date = Field(alias="firstSeenAt")
    last_seen_at: date = Field(alias="lastSeenAt")
    metrics: DriftMetrics

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={
            Decimal: str,
            uuid.UUID: str
        },
        use_enum_values=False
    )


class MerchantPriceHistory(BaseModel):
    """Everything known about one merchant's pricing over time."""
    merchant: Merchant
    recurring_charge: Optional[RecurringCharge] = Field(default=None, alias="recurringCharge")
    price_changes: List[PriceChangeEvent] = Field(default_factory=list, alias="priceChanges")
    transactions: List[Transaction] = Field(default_factory=list)
    drift: Optional[DriftMetrics] = None

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={
            Decimal: str,
            uuid.UUID: str
        },
    )
