"""Build work item comment text from Redmine journal entries."""

from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Journal

UNKNOWN_DATE = "Unknown Date"
UNKNOWN_USER = "Unknown User"
EMPTY_VALUE = "(empty)"


def format_timestamp(iso_timestamp: str | None) -> str:
    """Format ISO 8601 timestamp to human-readable format.

    Args:
        iso_timestamp: ISO 8601 formatted timestamp string

    Returns:
        Formatted timestamp (e.g., "2024-01-15 10:30:45Z").
        Returns original value if parsing fails.
    """
    if not iso_timestamp:
        return UNKNOWN_DATE

    try:
        timestamp_dt = dt.datetime.fromisoformat(iso_timestamp)
        formatted = timestamp_dt.isoformat(sep=" ", timespec="seconds")
        return formatted.replace("+00:00", "Z")
    except (ValueError, AttributeError):
        return iso_timestamp


def format_journal_as_comment(journal: Journal) -> str:
    """Render a journal entry as one HTML comment.

    Layout: header with author and timestamp, the list of field changes
    (if any), then the notes.
    """
    user = journal.author or UNKNOWN_USER
    comment = f"<b>Update by {user} on {format_timestamp(journal.created_on)}</b><br/>"

    if journal.details:
        comment += "<br/><b>Changes:</b><ul>"
        for detail in journal.details:
            field_name = detail.name or "Unknown field"
            old_value = detail.old_value or EMPTY_VALUE
            new_value = detail.new_value or EMPTY_VALUE
            comment += f"<li>{field_name}: {old_value} -> {new_value}</li>"
        comment += "</ul>"

    notes = journal.notes or "No notes provided."
    comment += f"<br/><b>Notes:</b><br/>{notes}"
    return comment


def sort_chronologically(journals: tuple[Journal, ...]) -> list[Journal]:
    """Return journals oldest first.

    Entries without a timestamp are moved before all dated entries, keeping
    their relative order.
    """
    return sorted(journals, key=lambda j: j.created_on or "")
