"""
Utils package.

Conventions:
- Money amounts are Decimal; calendar dates are datetime.date.
- Audit timestamps are epoch milliseconds.
- All application-specific IDs are UUIDs.
- Models persisted to DynamoDB implement `to_dynamodb_item()` and the
  `from_dynamodb_item(data)` classmethod, converting UUIDs and dates to
  strings and back.
"""
