import uuid
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing_extensions import Self

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class RawTransaction(BaseModel):
    """
    Canonical transaction record produced by an ingestion source (CSV upload
    or banking-aggregator sync). Immutable once recorded.
    """
    date: date
    raw_description: str = Field(alias="rawDescription", max_length=1000)
    amount: Decimal
    pending: bool = False
    raw_line: Optional[str] = Field(default=None, alias="rawLine")

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_encoders={Decimal: str},
    )

    @field_validator('amount', mode='before')
    @classmethod
    def ensure_amount_is_decimal(cls, v: Any) -> Decimal:
        if not isinstance(v, Decimal):
            try:
                return Decimal(str(v))
            except Exception as e:
                raise ValueError(f"Invalid amount value: {v}. Could not convert to Decimal.") from e
        return v


class Transaction(BaseModel):
    """
    A stored transaction for one user, optionally bound to a resolved merchant.

    ``merchant_id`` is None when merchant resolution failed; such transactions
    are kept but do not take part in recurrence detection until re-resolved.
    """
    transaction_id: uuid.UUID = Field(default_factory=uuid.uuid4, alias="transactionId")
    user_id: str = Field(alias="userId")
    account_id: Optional[str] = Field(default=None, alias="accountId", max_length=200)
    date: date
    description: str = Field(max_length=1000)
    amount: Decimal
    pending: bool = False
    merchant_id: Optional[uuid.UUID] = Field(default=None, alias="merchantId")
    created_at: int = Field(default_factory=_now_ms, alias="createdAt")
    updated_at: int = Field(default_factory=_now_ms, alias="updatedAt")

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={
            Decimal: str,
            uuid.UUID: str
        },
    )

    @field_validator('created_at', 'updated_at')
    @classmethod
    def check_positive_timestamp(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Timestamp must be a positive integer representing milliseconds since epoch")
        return v

    @classmethod
    def from_raw(
        cls,
        raw: RawTransaction,
        user_id: str,
        transaction_id: Optional[uuid.UUID] = None,
        account_id: Optional[str] = None,
        merchant_id: Optional[uuid.UUID] = None
    ) -> Self:
        """Build a stored transaction from an ingested raw record."""
        data: Dict[str, Any] = {
            'user_id': user_id,
            'account_id': account_id,
            'date': raw.date,
            'description': raw.raw_description,
            'amount': raw.amount,
            'pending': raw.pending,
            'merchant_id': merchant_id,
        }
        if transaction_id is not None:
            data['transaction_id'] = transaction_id
        return cls(**data)

    def to_dynamodb_item(self) -> Dict[str, Any]:
        """Convert to DynamoDB item format."""
        data = self.model_dump(by_alias=True, exclude_none=True)

        for key, value in data.items():
            if isinstance(value, uuid.UUID):
                data[key] = str(value)

        data['date'] = self.date.isoformat()
        return data

    @classmethod
    def from_dynamodb_item(cls, data: Dict[str, Any]) -> Self:
        """Create from DynamoDB item data."""
        converted_data = data.copy()

        for field in ('createdAt', 'updatedAt'):
            if isinstance(converted_data.get(field), Decimal):
                converted_data[field] = int(converted_data[field])

        for field in ('transactionId', 'merchantId'):
            if isinstance(converted_data.get(field), str):
                converted_data[field] = uuid.UUID(converted_data[field])

        return cls.model_validate(converted_data)
