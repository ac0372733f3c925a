"""
CSV transaction parser.

Parses bank CSV/TSV exports into RawTransaction records. Handles files with
or without a header row, single amount columns or separate debit/credit
columns, and the common US date formats. Amounts are reported as absolute
charge magnitudes regardless of each bank's sign convention.
"""

import csv
import re
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from models.transaction import RawTransaction

logger = logging.getLogger(__name__)

__all__ = [
    'CSVParseResult',
    'ColumnMapping',
    'parse_csv',
    'parse_date',
    'parse_amount',
    'detect_delimiter',
    'detect_columns',
    'detect_columns_from_data',
    'looks_like_date',
    'looks_like_amount',
    'generate_sample_csv',
    'MAX_ERROR_MESSAGES',
]

MAX_ERROR_MESSAGES = 100
DELIMITER_SAMPLE_LINES = 5
TWO_DIGIT_YEAR_PIVOT = 50

EMPTY_FILE_ERROR = 'CSV file is empty'
MISSING_COLUMNS_ERROR = (
    'Could not detect required columns. '
    'Please ensure your file has Date, Description, and Amount columns.'
)

ISO_DATE = re.compile(r'^(\d{4})-(\d{2})-(\d{2})$')
SLASH_DATE = re.compile(r'^(\d{1,2})/(\d{1,2})/(\d{4})$')
SLASH_SHORT_DATE = re.compile(r'^(\d{1,2})/(\d{1,2})/(\d{2})$')
DASH_DATE = re.compile(r'^(\d{1,2})-(\d{1,2})-(\d{4})$')

DATE_SHAPES = (
    re.compile(r'^\d{1,2}/\d{1,2}/\d{2,4}$'),
    re.compile(r'^\d{4}-\d{2}-\d{2}$'),
    re.compile(r'^\d{1,2}-\d{1,2}-\d{2,4}$'),
)
AMOUNT_SHAPE = re.compile(r'^(?:-?\d+\.?\d*|\(\d+\.?\d*\))$')
AMOUNT_NOISE = re.compile(r'[$,"\s]')
CURRENCY_NOISE = re.compile(r'["\'$€£¥\s]')
UNSIGNED_DECIMAL = re.compile(r'^(?:\d+(?:\.\d*)?|\.\d+)$')
QUOTES = re.compile(r'["\']')

DESCRIPTION_HEADERS = ('description', 'descrip', 'merchant', 'payee', 'narrative', 'details')
DESCRIPTION_EXACT_HEADERS = ('name', 'memo')
AMOUNT_EXACT_HEADERS = ('value', 'sum')
DEBIT_HEADERS = ('debit', 'withdrawal')
CREDIT_HEADERS = ('credit', 'deposit')


@dataclass(frozen=True)
class ColumnMapping:
    date_index: int
    description_index: int
    amount_index: int
    debit_index: Optional[int] = None
    credit_index: Optional[int] = None

    @property
    def has_debit_credit(self) -> bool:
        return self.debit_index is not None and self.credit_index is not None


@dataclass
class CSVParseResult:
    """
    Outcome of parsing one file.

    ``errors`` holds at most MAX_ERROR_MESSAGES messages; ``error_count`` is
    the full total. ``skipped_count`` counts every data row that did not
    produce a transaction, errors included.
    """
    transactions: List[RawTransaction] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    error_count: int = 0
    skipped_count: int = 0

    def add_error(self, message: str) -> None:
        self.error_count += 1
        if len(self.errors) < MAX_ERROR_MESSAGES:
            self.errors.append(message)


def detect_delimiter(lines: List[str]) -> str:
    """
    Choose tab or comma from the first few lines. Tab wins only if every
    sampled line contains one and tabs outnumber commas.
    """
    sample = lines[:DELIMITER_SAMPLE_LINES]
    if not sample:
        return ','
    tab_count = sum(line.count('\t') for line in sample)
    comma_count = sum(line.count(',') for line in sample)
    if all('\t' in line for line in sample) and tab_count > comma_count:
        return '\t'
    return ','


def split_line(line: str, delimiter: str) -> List[str]:
    fields = next(csv.reader([line], delimiter=delimiter), [])
    return [f.strip() for f in fields]


def looks_like_date(value: str) -> bool:
    return any(shape.match(value) for shape in DATE_SHAPES)


def looks_like_amount(value: str) -> bool:
    cleaned = AMOUNT_NOISE.sub('', value)
    return bool(AMOUNT_SHAPE.match(cleaned))


def _normalize_header(header: str) -> str:
    lowered = re.sub(r'["\'.]', '', header.lower())
    return re.sub(r'\s+', ' ', lowered).strip()


def detect_columns(headers: List[str]) -> Optional[ColumnMapping]:
    """
    Map header names to column roles.

    Columns whose name contains "date" are preferred for the date role over
    "posted"/"trans" columns, so "Transaction Description" is never taken as
    the date.
    """
    names = [_normalize_header(h) for h in headers]

    date_index = next((i for i, h in enumerate(names) if 'date' in h), None)
    if date_index is None:
        date_index = next((i for i, h in enumerate(names) if h == 'posted' or 'trans' in h), None)

    description_index = next(
        (i for i, h in enumerate(names)
         if i != date_index and (any(key in h for key in DESCRIPTION_HEADERS) or h in DESCRIPTION_EXACT_HEADERS)),
        None
    )
    amount_index = next(
        (i for i, h in enumerate(names) if 'amount' in h or h in AMOUNT_EXACT_HEADERS),
        None
    )
    debit_index = next((i for i, h in enumerate(names) if any(key in h for key in DEBIT_HEADERS)), None)
    credit_index = next((i for i, h in enumerate(names) if any(key in h for key in CREDIT_HEADERS)), None)

    if date_index is None and len(headers) >= 3:
        date_index, description_index, amount_index = 0, 1, 2

    if date_index is None or description_index is None:
        return None

    if amount_index is None and (debit_index is None or credit_index is None):
        amount_index = len(headers) - 1

    return ColumnMapping(
        date_index=date_index,
        description_index=description_index,
        amount_index=amount_index if amount_index is not None else len(headers) - 1,
        debit_index=debit_index,
        credit_index=credit_index,
    )


def detect_columns_from_data(fields: List[str]) -> Optional[ColumnMapping]:
    """Infer column roles from the shape of a headerless first row."""
    date_index = amount_index = description_index = None

    for i, value in enumerate(fields):
        if date_index is None and looks_like_date(value):
            date_index = i
        elif amount_index is None and looks_like_amount(value):
            amount_index = i
        elif description_index is None and len(value) > 2 and not looks_like_date(value) and not looks_like_amount(value):
            description_index = i

    if date_index is None or description_index is None or amount_index is None:
        return None
    return ColumnMapping(date_index=date_index, description_index=description_index, amount_index=amount_index)


def parse_date(value: str) -> Optional[date]:
    """
    Parse YYYY-MM-DD, M/D/YYYY, M/D/YY or M-D-YYYY.

    Two-digit years above 50 are 19xx, the rest 20xx. Returns None for
    anything else, including impossible calendar dates.
    """
    cleaned = QUOTES.sub('', value.strip())

    try:
        match = ISO_DATE.match(cleaned)
        if match:
            year, month, day = match.groups()
            return date(int(year), int(month), int(day))

        match = SLASH_DATE.match(cleaned) or DASH_DATE.match(cleaned)
        if match:
            month, day, year = match.groups()
            return date(int(year), int(month), int(day))

        match = SLASH_SHORT_DATE.match(cleaned)
        if match:
            month, day, short_year = match.groups()
            century = 1900 if int(short_year) > TWO_DIGIT_YEAR_PIVOT else 2000
            return date(century + int(short_year), int(month), int(day))
    except ValueError:
        return None

    return None


def parse_amount(value: str) -> Optional[Decimal]:
    """
    Parse a signed amount.

    Currency symbols, quotes, whitespace and thousands separators are
    ignored. Parentheses or a leading minus make the value negative. An empty
    value is zero. Returns None if the value is not a number.
    """
    cleaned = CURRENCY_NOISE.sub('', value)
    if not cleaned:
        return Decimal('0')

    negative = False
    if cleaned.startswith('(') and cleaned.endswith(')'):
        negative = True
        cleaned = cleaned[1:-1]
    if cleaned.startswith('-'):
        negative = True
        cleaned = cleaned[1:]
    cleaned = cleaned.replace(',', '')

    if not UNSIGNED_DECIMAL.match(cleaned):
        return None
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    return -amount if negative else amount


def _field(fields: List[str], index: Optional[int]) -> str:
    if index is None or index >= len(fields):
        return ''
    return fields[index]


def _row_amount(fields: List[str], mapping: ColumnMapping) -> Optional[Decimal]:
    if not mapping.has_debit_credit:
        return parse_amount(_field(fields, mapping.amount_index))

    debit = parse_amount(_field(fields, mapping.debit_index))
    credit = parse_amount(_field(fields, mapping.credit_index))
    if debit is None or credit is None:
        return None
    if debit > 0:
        return debit
    if credit > 0:
        return -credit
    return Decimal('0')


def parse_csv(content: str) -> CSVParseResult:
    """
    Parse CSV/TSV text into raw transactions sorted by date.

    Per-row problems never abort the file: bad dates and unparsable amounts
    are reported in ``errors``; rows with an empty description or a zero
    amount are skipped silently.
    """
    result = CSVParseResult()
    lines = [line for line in content.splitlines() if line.strip()]

    if not lines:
        result.add_error(EMPTY_FILE_ERROR)
        return result

    delimiter = detect_delimiter(lines)
    first_fields = split_line(lines[0], delimiter)

    first_line_is_data = (
        any(looks_like_date(f) for f in first_fields)
        and any(looks_like_amount(f) for f in first_fields)
    )
    if first_line_is_data:
        mapping = detect_columns_from_data(first_fields)
        data_start = 0
    else:
        mapping = detect_columns(first_fields)
        data_start = 1

    if mapping is None:
        result.add_error(MISSING_COLUMNS_ERROR)
        return result

    logger.debug(
        f"Parsing CSV with delimiter {delimiter!r}, header={'no' if first_line_is_data else 'yes'}",
        extra={'mapping': mapping}
    )

    for line_number in range(data_start, len(lines)):
        row = line_number + 1
        line = lines[line_number].strip()
        fields = split_line(line, delimiter)

        date_value = _field(fields, mapping.date_index)
        parsed_date = parse_date(date_value)
        if parsed_date is None:
            result.add_error(f'Row {row}: Invalid date "{date_value}"')
            result.skipped_count += 1
            continue

        description = QUOTES.sub('', _field(fields, mapping.description_index)).strip()
        if not description:
            result.skipped_count += 1
            continue

        amount = _row_amount(fields, mapping)
        if amount is None:
            result.add_error(f'Row {row}: Invalid amount')
            result.skipped_count += 1
            continue

        if amount == 0:
            result.skipped_count += 1
            continue

        result.transactions.append(RawTransaction(
            date=parsed_date,
            raw_description=description,
            amount=abs(amount),
            raw_line=line,
        ))

    result.transactions.sort(key=lambda tx: tx.date)

    if result.error_count:
        logger.warning(f"CSV parse finished with {result.error_count} row errors")
    logger.info(
        f"Parsed {len(result.transactions)} transactions from CSV, skipped {result.skipped_count} rows"
    )
    return result


def generate_sample_csv() -> str:
    """Sample export with three subscriptions, two of which changed price."""
    return "\n".join([
        "Date,Description,Amount",
        "01/15/2024,Netflix,15.99",
        "02/15/2024,Netflix,15.99",
        "03/15/2024,Netflix,17.99",
        "04/15/2024,Netflix,17.99",
        "01/10/2024,Spotify Premium,9.99",
        "02/10/2024,Spotify Premium,9.99",
        "03/10/2024,Spotify Premium,10.99",
        "04/10/2024,Spotify Premium,10.99",
        "01/05/2024,Amazon Prime,14.99",
        "02/05/2024,Amazon Prime,14.99",
        "03/05/2024,Amazon Prime,14.99",
        "04/05/2024,Amazon Prime,16.99",
    ])
