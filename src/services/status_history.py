"""Append-only status ledger attached to every order item."""

from datetime import datetime, timezone
from typing import Any

from src.models.order import OrderItem, StatusHistoryEntry


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Serialize a datetime for storage, assuming UTC when naive."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a stored or carrier-supplied timestamp.

    Accepts datetimes and ISO-8601 strings (a trailing ``Z`` is allowed).
    Naive values are treated as UTC.

    Returns:
        datetime | None: Aware datetime, or None when the value can't be read.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def last_entry(item: OrderItem) -> StatusHistoryEntry | None:
    history = item.get("status_history") or []
    return history[-1] if history else None


def append_entry(
    item: OrderItem,
    status: str,
    note: str | None,
    changed_at: datetime,
) -> StatusHistoryEntry:
    """Append one entry to the item's ledger.

    Entries are never rewritten. If `changed_at` is earlier than the newest
    entry (clock skew between writers), the newest timestamp is reused so the
    ledger stays non-decreasing.

    Args:
        item: Item whose ledger is extended in place.
        status: Status value recorded by the entry.
        note: Optional human-readable note.
        changed_at: When the change happened.

    Returns:
        StatusHistoryEntry: The entry that was appended.
    """
    previous = last_entry(item)
    if previous is not None:
        previous_at = parse_timestamp(previous.get("changed_at"))
        if previous_at is not None and previous_at > parse_timestamp(changed_at):
            changed_at = previous_at

    entry: StatusHistoryEntry = {
        "status": str(status),
        "note": note,
        "changed_at": format_timestamp(changed_at),
    }
    item.setdefault("status_history", []).append(entry)
    return entry


def latest_entry_for(item: OrderItem, status: str) -> StatusHistoryEntry | None:
    """Most recent ledger entry recording `status`, if any."""
    for entry in reversed(item.get("status_history") or []):
        if entry.get("status") == status:
            return entry
    return None
