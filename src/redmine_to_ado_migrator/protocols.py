"""Protocols defining the contracts for source and target systems.

The migration architecture separates concerns into three components:

1. SourceReader: Extracts issues from the source (Redmine)
2. TargetWriter: Creates work items, comments, attachments and links in the target (Azure DevOps)
3. Migrator: Orchestrates the flow, owns the identity map and the pacing

This separation allows:
- Testing the orchestration with in-memory implementations
- Keeping HTTP details (pagination, JSON-Patch documents) out of the core
- Swapping the pacer for a no-op in tests without touching orchestration logic
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import SourceRecord, TargetFieldSet


class Pacer(Protocol):
    """Enforces a minimum spacing between outbound calls."""

    def pace(self) -> None:
        """Block until the next call may be made."""
        ...


class SourceReader(Protocol):
    """Protocol for reading issues from the source system.

    Implementations raise SourceError for I/O failures. The Migrator treats
    a failure of list_records() as fatal and a failure of a single
    get_record_detail() or download as a per-record skip.
    """

    def list_records(self, scope: str | None = None) -> Sequence[SourceRecord]:
        """Return all issue summaries, optionally limited to one project.

        Implementations page through the API until a short page is returned
        or the reported total is reached.
        """
        ...

    def get_record_detail(self, record_id: int) -> SourceRecord | None:
        """Return the full issue with journals, attachments, relations and children.

        Returns:
            None if the issue no longer exists
        """
        ...

    def download_attachment_content(self, content_url: str) -> bytes | None:
        """Download attachment bytes, or None if the file cannot be retrieved."""
        ...


class TargetWriter(Protocol):
    """Protocol for creating data in the target system.

    Every method is atomic at the target's granularity: a failure leaves no
    half-written record behind. Failures are reported by raising TargetError,
    except create_link() which returns False for links it refuses to create.
    """

    def validate_access(self) -> None:
        """Validate API access to the target system.

        Raises:
            ConnectivityError: If the target cannot be reached or authentication fails
        """
        ...

    def create_record(self, work_item_type: str, fields: TargetFieldSet) -> int:
        """Create a work item and return its id."""
        ...

    def add_comment(self, record_id: int, text: str) -> None:
        """Append a comment to a work item. Comments are never edited or removed."""
        ...

    def upload_attachment(self, content: bytes, filename: str) -> str:
        """Upload file content to attachment storage and return its URL."""
        ...

    def link_attachment(self, record_id: int, attachment_url: str, filename: str) -> None:
        """Attach an uploaded file to a work item."""
        ...

    def create_link(self, from_id: int, to_id: int, link_type: str, comment: str = "") -> bool:
        """Create a typed link from one work item to another.

        Returns:
            True if the link was created, False if it was refused
            (a work item cannot be linked to itself)
        """
        ...
