"""
CSV Export Ingestion Service

Parses the three ESP exports the engine understands into typed records:

- campaigns: one row per campaign (``Campaign Name``, ``Send Time``,
  ``Total Recipients``, ``Unique Opens``, ``Unique Clicks``,
  ``Unique Placed Order``, ``Revenue``, ``Unsubscribes``,
  ``Spam Complaints``, ``Bounces``)
- flows: one row per flow message per day (``Day``, ``Flow ID``,
  ``Flow Name``, ``Flow Message ID``, ``Flow Message Name``, ``Status``,
  ``Delivered`` plus counts or decimal/percent rates)
- subscribers: one row per profile (``Email``, ``Klaviyo ID`` and activity
  timestamps)

Key Features:
- Tolerant header matching (case, punctuation and duplicate suffixes such
  as ``Send Time_2`` are ignored)
- Tolerant date parsing (epoch seconds/ms, M/D/YY, YYYY-MM-DD, YYYY/MM/DD,
  MM/DD/YYYY, ISO timestamps); rows whose date cannot be parsed are
  skipped and counted, never substituted with "now"
- Numbers are cleaned of ``,``, ``$`` and ``%``; anything non-finite is 0
- SMS-only campaign rows and non-email flow messages are dropped
- Flow sequence positions are assigned per flow by the first day each
  message was seen

Usage:
    from email_analytics.services.ingestion import ingest_csv

    result = ingest_csv(text, IngestKind.CAMPAIGNS)
    if result.errors:
        ...
"""

import io
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from email_analytics.models.enums import IngestKind
from email_analytics.models.schemas import (
    IngestionError,
    IngestionResult,
    SendRecord,
    SubscriberRecord,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS - Column Aliases
# =============================================================================

CAMPAIGN_NAME_COLUMNS: List[str] = ["Campaign Name", "Name"]
CAMPAIGN_DATE_COLUMNS: List[str] = [
    "Message send date time",
    "Send Time",
    "Send Date",
    "Sent At",
    "Date",
]
CAMPAIGN_CHANNEL_COLUMNS: List[str] = ["Send channel", "Campaign Channel", "Channel", "Message Channel"]

CAMPAIGN_NUMERIC_COLUMNS: Dict[str, List[str]] = {
    "emailsSent": ["Total Recipients", "Recipients", "Delivered"],
    "uniqueOpens": ["Unique Opens"],
    "uniqueClicks": ["Unique Clicks"],
    "totalOrders": ["Unique Placed Order", "Placed Order"],
    "revenue": ["Revenue"],
    "unsubscribesCount": ["Unsubscribes"],
    "spamComplaintsCount": ["Spam Complaints"],
    "bouncesCount": ["Bounces"],
}

FLOW_REQUIRED_COLUMNS: List[str] = ["Day", "Flow ID", "Flow Name", "Flow Message ID", "Delivered"]

SUBSCRIBER_ID_COLUMNS: List[str] = ["Klaviyo ID", "Profile ID", "ID"]

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_EPOCH_PATTERN = re.compile(r"^\d{10,13}$")
_MDY_SHORT_PATTERN = re.compile(r"^([0-1]?\d)[/-]([0-3]?\d)[/-](\d{2})$")
_YMD_PATTERN = re.compile(r"^(\d{4})[/-]([0-1]?\d)[/-]([0-3]?\d)$")
_MDY_LONG_PATTERN = re.compile(r"^([0-1]?\d)[/-]([0-3]?\d)[/-](\d{4})$")


# =============================================================================
# VALUE PARSING
# =============================================================================

def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _utc_date(year: int, month: int, day: int) -> Optional[datetime]:
    try:
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None


def parse_metric_date(raw: Any) -> Optional[datetime]:
    """
    Parse a date cell from any of the export formats seen in the wild.

    Args:
        raw: Cell value (string, number, datetime or pandas Timestamp).

    Returns:
        Timezone-aware UTC datetime, or None when the value is unparseable.

    Example:
        >>> parse_metric_date("3/4/24")
        datetime.datetime(2024, 3, 4, 0, 0, tzinfo=datetime.timezone.utc)
        >>> parse_metric_date("not a date") is None
        True
    """
    if _is_missing(raw):
        return None
    if isinstance(raw, pd.Timestamp):
        if pd.isna(raw):
            return None
        raw = raw.to_pydatetime()
    if isinstance(raw, datetime):
        return raw.replace(tzinfo=timezone.utc) if raw.tzinfo is None else raw.astimezone(timezone.utc)

    text = str(raw).strip()
    if _EPOCH_PATTERN.match(text):
        seconds = int(text) / 1000 if len(text) == 13 else int(text)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None

    text = text.replace(",", "")

    match = _MDY_SHORT_PATTERN.match(text)
    if match:
        # Two-digit years are always 20xx
        return _utc_date(2000 + int(match.group(3)), int(match.group(1)), int(match.group(2)))

    match = _YMD_PATTERN.match(text)
    if match:
        return _utc_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = _MDY_LONG_PATTERN.match(text)
    if match:
        return _utc_date(int(match.group(3)), int(match.group(1)), int(match.group(2)))

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        return parsed.replace(tzinfo=timezone.utc) if parsed.tzinfo is None else parsed.astimezone(timezone.utc)
    except ValueError:
        pass

    fallback = pd.to_datetime(text, errors="coerce", utc=True)
    if pd.isna(fallback):
        return None
    return fallback.to_pydatetime()


def clean_number(value: Any) -> float:
    """
    Parse a numeric cell; missing, malformed or non-finite values become 0.

    Example:
        >>> clean_number("$1,234.50")
        1234.5
    """
    if _is_missing(value):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        cleaned = str(value).replace(",", "").replace("$", "").replace("%", "").strip()
        try:
            number = float(cleaned)
        except ValueError:
            return 0.0
    return number if math.isfinite(number) else 0.0


def parse_decimal_rate(value: Any) -> float:
    """Rate as a fraction: ``"0.5%"`` and ``0.005`` both give 0.005."""
    if _is_missing(value):
        return 0.0
    if isinstance(value, str) and "%" in value:
        return clean_number(value) / 100
    return clean_number(value)


def _count(value: Any) -> int:
    return max(0, int(round(clean_number(value))))


def _text(value: Any) -> Optional[str]:
    if _is_missing(value):
        return None
    return str(value).strip()


# =============================================================================
# COLUMN MATCHING
# =============================================================================

def normalize_key(key: str) -> str:
    """Lowercase and collapse punctuation: ``"Send Time_2"`` -> ``"send time 2"``."""
    return re.sub(r"[^a-z0-9]+", " ", str(key).lower()).strip()


def find_column(columns: Sequence[str], candidates: Sequence[str]) -> Optional[str]:
    """
    First column matching any candidate name.

    Exact normalized matches win, then columns containing every token of
    the candidate, then columns starting with the candidate.
    """
    normalized = [(col, normalize_key(col)) for col in columns]
    for want in candidates:
        target = normalize_key(want)
        for col, key in normalized:
            if key == target:
                return col
        want_tokens = set(target.split())
        for col, key in normalized:
            if want_tokens and want_tokens <= set(key.split()):
                return col
        for col, key in normalized:
            if key.startswith(target):
                return col
    return None


def read_csv_text(content: Union[str, bytes]) -> pd.DataFrame:
    """Read CSV text with every cell kept as a string."""
    if isinstance(content, bytes):
        content = content.decode("utf-8-sig")
    return pd.read_csv(io.StringIO(content), dtype=str, keep_default_na=False)


def _cell(row: pd.Series, column: Optional[str]) -> Any:
    return row[column] if column is not None else None


# =============================================================================
# CAMPAIGNS
# =============================================================================

def parse_campaigns(df: pd.DataFrame) -> Tuple[List[SendRecord], int, List[IngestionError]]:
    """
    Campaign export rows to SendRecords.

    Returns:
        Tuple of (records, rows skipped, structural errors).
    """
    columns = list(df.columns)
    name_col = find_column(columns, CAMPAIGN_NAME_COLUMNS)
    date_col = find_column(columns, CAMPAIGN_DATE_COLUMNS)
    errors = []
    if name_col is None:
        errors.append(IngestionError(kind=IngestKind.CAMPAIGNS, message="Missing campaign name column", column="Campaign Name"))
    if date_col is None:
        errors.append(IngestionError(kind=IngestKind.CAMPAIGNS, message="Missing send time column", column="Send Time"))
    if errors:
        return [], 0, errors

    channel_col = find_column(columns, CAMPAIGN_CHANNEL_COLUMNS)
    subject_col = find_column(columns, ["Subject"])
    numeric_cols = {field: find_column(columns, names) for field, names in CAMPAIGN_NUMERIC_COLUMNS.items()}

    records = []
    skipped = 0
    bad_dates = 0
    for _, row in df.iterrows():
        name = _text(row[name_col])
        if name is None:
            skipped += 1
            continue
        channel = (_text(_cell(row, channel_col)) or "").lower()
        if "sms" in channel and "email" not in channel:
            skipped += 1
            continue
        sent = parse_metric_date(row[date_col])
        if sent is None:
            bad_dates += 1
            continue

        counts = {field: _count(_cell(row, col)) for field, col in numeric_cols.items() if field != "revenue"}
        records.append(SendRecord(
            sentDate=sent,
            campaignName=name,
            subject=_text(_cell(row, subject_col)) or name,
            revenue=max(0.0, clean_number(_cell(row, numeric_cols["revenue"]))),
            **counts,
        ))

    if bad_dates:
        logger.warning(f"Skipped {bad_dates} campaign rows due to invalid send time")
    return records, skipped + bad_dates, []


# =============================================================================
# FLOWS
# =============================================================================

def _build_sequence_map(rows: List[Tuple[str, str, datetime]]) -> Dict[Tuple[str, str], int]:
    """1-based message position per flow, ordered by the first day each message appears."""
    earliest: Dict[str, Dict[str, datetime]] = {}
    for flow_id, message_id, day in rows:
        inner = earliest.setdefault(flow_id, {})
        if message_id not in inner or day < inner[message_id]:
            inner[message_id] = day
    positions = {}
    for flow_id, messages in earliest.items():
        ordered = sorted(messages.items(), key=lambda kv: kv[1])
        for idx, (message_id, _) in enumerate(ordered):
            positions[(flow_id, message_id)] = idx + 1
    return positions


def _count_or_rate(row: pd.Series, count_col: Optional[str], rate_col: Optional[str], delivered: int) -> int:
    # "Spam" can resolve to the "Spam Rate" column
    count = _count(_cell(row, count_col)) if count_col != rate_col else 0
    if count:
        return count
    return max(0, int(round(delivered * parse_decimal_rate(_cell(row, rate_col)))))


def parse_flows(df: pd.DataFrame) -> Tuple[List[SendRecord], int, List[IngestionError]]:
    """
    Flow export rows to SendRecords with sequence positions.

    Counts missing from the export are rebuilt from their rate columns
    (decimal fractions or percentages) and ``Delivered``.
    """
    columns = list(df.columns)
    required = {name: find_column(columns, [name]) for name in FLOW_REQUIRED_COLUMNS}
    errors = [
        IngestionError(kind=IngestKind.FLOWS, message=f"Missing required column: {name}", column=name)
        for name, col in required.items() if col is None
    ]
    if errors:
        return [], 0, errors

    channel_col = find_column(columns, ["Flow Message Channel"])
    lookup = {
        "name": find_column(columns, ["Flow Message Name"]),
        "status": find_column(columns, ["Status"]),
        "opens": find_column(columns, ["Unique Opens"]),
        "clicks": find_column(columns, ["Unique Clicks"]),
        "orders": find_column(columns, ["Unique Placed Order", "Placed Order"]),
        "revenue": find_column(columns, ["Revenue"]),
        "bounced": find_column(columns, ["Bounced"]),
        "bounce_rate": find_column(columns, ["Bounce Rate"]),
        "unsubs": find_column(columns, ["Unsubscribes"]),
        "unsub_rate": find_column(columns, ["Unsub Rate", "Unsubscribe Rate"]),
        "spam": find_column(columns, ["Spam"]),
        "spam_rate": find_column(columns, ["Complaint Rate", "Spam Rate"]),
    }

    parsed_rows = []
    skipped = 0
    bad_dates = 0
    for _, row in df.iterrows():
        channel = (_text(_cell(row, channel_col)) or "").lower()
        if channel and channel != "email":
            skipped += 1
            continue
        if any(_is_missing(row[col]) for col in required.values()):
            skipped += 1
            continue
        day = parse_metric_date(row[required["Day"]])
        if day is None:
            bad_dates += 1
            continue
        parsed_rows.append((row, day))

    positions = _build_sequence_map([
        (str(row[required["Flow ID"]]).strip(), str(row[required["Flow Message ID"]]).strip(), day)
        for row, day in parsed_rows
    ])

    records = []
    for row, day in parsed_rows:
        flow_id = str(row[required["Flow ID"]]).strip()
        message_id = str(row[required["Flow Message ID"]]).strip()
        position = positions.get((flow_id, message_id), 1)
        delivered = _count(row[required["Delivered"]])
        records.append(SendRecord(
            sentDate=day,
            flowId=flow_id,
            flowName=str(row[required["Flow Name"]]).strip(),
            flowMessageId=message_id,
            emailName=_text(_cell(row, lookup["name"])) or f"Email {position}",
            sequencePosition=position,
            status=(_text(_cell(row, lookup["status"])) or "unknown").lower(),
            emailsSent=delivered,
            uniqueOpens=_count(_cell(row, lookup["opens"])),
            uniqueClicks=_count(_cell(row, lookup["clicks"])),
            totalOrders=_count(_cell(row, lookup["orders"])),
            revenue=max(0.0, clean_number(_cell(row, lookup["revenue"]))),
            bouncesCount=_count_or_rate(row, lookup["bounced"], lookup["bounce_rate"], delivered),
            unsubscribesCount=_count_or_rate(row, lookup["unsubs"], lookup["unsub_rate"], delivered),
            spamComplaintsCount=_count_or_rate(row, lookup["spam"], lookup["spam_rate"], delivered),
        ))

    if bad_dates:
        logger.warning(f"Skipped {bad_dates} flow rows due to invalid Day")
    return records, skipped + bad_dates, []


# =============================================================================
# SUBSCRIBERS
# =============================================================================

def parse_subscribers(df: pd.DataFrame) -> Tuple[List[SubscriberRecord], int, List[IngestionError]]:
    """Subscriber export rows to SubscriberRecords; rows with invalid emails are skipped."""
    columns = list(df.columns)
    email_col = find_column(columns, ["Email"])
    id_col = find_column(columns, SUBSCRIBER_ID_COLUMNS)
    errors = []
    if email_col is None:
        errors.append(IngestionError(kind=IngestKind.SUBSCRIBERS, message="Missing email column", column="Email"))
    if id_col is None:
        errors.append(IngestionError(kind=IngestKind.SUBSCRIBERS, message="Missing profile id column", column="Klaviyo ID"))
    if errors:
        return [], 0, errors

    date_cols = {
        "profileCreated": find_column(columns, ["Profile Created On", "Date Added"]),
        "firstActive": find_column(columns, ["First Active"]),
        "lastActive": find_column(columns, ["Last Active"]),
        "lastOpen": find_column(columns, ["Last Open"]),
        "lastClick": find_column(columns, ["Last Click"]),
    }
    consent_col = find_column(columns, ["Email Marketing Consent"])
    clv_col = find_column(columns, ["Total Customer Lifetime Value"])
    historic_clv_col = find_column(columns, ["Historic Customer Lifetime Value"])
    orders_col = find_column(columns, ["Historic Number Of Orders"])

    records = []
    skipped = 0
    for _, row in df.iterrows():
        email = _text(row[email_col])
        profile_id = _text(row[id_col])
        if email is None or profile_id is None or not EMAIL_PATTERN.match(email):
            skipped += 1
            continue
        orders = _count(_cell(row, orders_col))
        historic_clv = clean_number(_cell(row, historic_clv_col))
        records.append(SubscriberRecord(
            id=profile_id,
            email=email,
            emailConsentRaw=_text(_cell(row, consent_col)),
            totalClv=clean_number(_cell(row, clv_col)),
            totalOrders=orders,
            isBuyer=orders > 0 or historic_clv > 0,
            **{field: parse_metric_date(_cell(row, col)) for field, col in date_cols.items()},
        ))
    return records, skipped, []


# =============================================================================
# INGESTION FUNCTIONS
# =============================================================================

PARSERS = {
    IngestKind.CAMPAIGNS: (parse_campaigns, "campaigns"),
    IngestKind.FLOWS: (parse_flows, "flowEmails"),
    IngestKind.SUBSCRIBERS: (parse_subscribers, "subscribers"),
}


def ingest_csv(content: Union[str, bytes], kind: IngestKind) -> IngestionResult:
    """
    Parse and validate one CSV export.

    Performs the following steps:
    1. Parse CSV using pandas
    2. Validate required columns
    3. Convert rows, skipping rows with unparseable dates or invalid values

    Args:
        content: Raw CSV text or bytes.
        kind: Which export this is.

    Returns:
        IngestionResult holding the parsed records, the number of rows
        parsed and skipped, and structural errors (empty when the file was
        usable).
    """
    kind = IngestKind(kind)
    try:
        df = read_csv_text(content)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        return IngestionResult(
            kind=kind,
            errors=[IngestionError(kind=kind, message=f"Failed to parse CSV file: {e}")],
        )

    if df.empty:
        return IngestionResult(
            kind=kind,
            errors=[IngestionError(kind=kind, message="CSV file is empty or contains no data rows")],
        )
    logger.info(f"Parsed {kind.value} CSV with {len(df)} rows and {len(df.columns)} columns")

    parser, field = PARSERS[kind]
    records, skipped, errors = parser(df)
    if errors:
        return IngestionResult(kind=kind, errors=errors, rowsSkipped=len(df))
    if not records:
        errors = [IngestionError(kind=kind, message=f"No valid {kind.value} rows found")]

    logger.info(f"Ingested {len(records)} {kind.value} rows ({skipped} skipped)")
    return IngestionResult(
        kind=kind,
        rowsParsed=len(records),
        rowsSkipped=skipped,
        errors=errors,
        **{field: records},
    )
