"""
Merchant entity models.

A Merchant aggregates every spelling variant of one real-world payee for a
single user. A MerchantAlias durably binds one raw description string to a
merchant; once written it is never reassigned.
"""

import uuid
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing_extensions import Self

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class Merchant(BaseModel):
    merchant_id: uuid.UUID = Field(default_factory=uuid.uuid4, alias="merchantId")
    user_id: str = Field(alias="userId")
    canonical_name: str = Field(alias="canonicalName", min_length=1, max_length=200)
    raw_name_aliases: Set[str] = Field(default_factory=set, alias="rawNameAliases")
    excluded: bool = False
    created_at: int = Field(default_factory=_now_ms, alias="createdAt")
    updated_at: int = Field(default_factory=_now_ms, alias="updatedAt")

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={uuid.UUID: str},
    )

    @field_validator('created_at', 'updated_at')
    @classmethod
    def check_positive_timestamp(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Timestamp must be a positive integer representing milliseconds since epoch")
        return v

    def to_dynamodb_item(self) -> Dict[str, Any]:
        """Convert to DynamoDB item format."""
        data = self.model_dump(by_alias=True, exclude_none=True)
        data['merchantId'] = str(self.merchant_id)
        # DynamoDB rejects empty sets and cannot order them; store as a sorted list
        data['rawNameAliases'] = sorted(self.raw_name_aliases)
        return data

    @classmethod
    def from_dynamodb_item(cls, data: Dict[str, Any]) -> Self:
        """Create from DynamoDB item data."""
        converted_data = data.copy()

        for field in ('createdAt', 'updatedAt'):
            if isinstance(converted_data.get(field), Decimal):
                converted_data[field] = int(converted_data[field])

        if isinstance(converted_data.get('merchantId'), str):
            converted_data['merchantId'] = uuid.UUID(converted_data['merchantId'])

        aliases = converted_data.get('rawNameAliases')
        converted_data['rawNameAliases'] = set(aliases) if aliases else set()

        return cls.model_validate(converted_data)


class MerchantAlias(BaseModel):
    user_id: str = Field(alias="userId")
    raw_name: str = Field(alias="rawName", min_length=1, max_length=1000)
    merchant_id: uuid.UUID = Field(alias="merchantId")
    created_at: int = Field(default_factory=_now_ms, alias="createdAt")

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_encoders={uuid.UUID: str},
    )

    def to_dynamodb_item(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True)
        data['merchantId'] = str(self.merchant_id)
        return data

    @classmethod
    def from_dynamodb_item(cls, data: Dict[str, Any]) -> Self:
        converted_data = data.copy()
        if isinstance(converted_data.get('createdAt'), Decimal):
            converted_data['createdAt'] = int(converted_data['createdAt'])
        if isinstance(converted_data.get('merchantId'), str):
            converted_data['merchantId'] = uuid.UUID(converted_data['merchantId'])
        return cls.model_validate(converted_data)
