"""Data models for migration between Redmine and Azure DevOps.

These models represent the normalized data exchanged between the source
reader, the field mapper, the target writer and the Migrator orchestrator.
They are intentionally simple: records are immutable once fetched and live
for a single migration run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple

# ADO field reference name -> value
TargetFieldSet = dict[str, object]


@dataclass(frozen=True)
class CustomFieldValue:
    """A Redmine custom field value, in the order Redmine returns them."""

    name: str
    value: object = None


@dataclass(frozen=True)
class JournalDetail:
    """A single field change recorded in a journal entry."""

    name: str
    old_value: str | None = None
    new_value: str | None = None


@dataclass(frozen=True)
class Journal:
    """A Redmine journal entry (history item with optional notes).

    Journals become comments on the target work item.
    """

    author: str = ""
    created_on: str | None = None
    notes: str = ""
    details: tuple[JournalDetail, ...] = ()


@dataclass(frozen=True)
class AttachmentRef:
    """An attachment on a Redmine issue.

    Only the locator is known at fetch time; the bytes are downloaded
    lazily during the extras phase.
    """

    filename: str
    content_url: str
    filesize: int = 0


@dataclass(frozen=True)
class RelationRef:
    """A typed relation as Redmine reports it.

    Redmine returns the same relation on both issues, so the current issue
    may sit in either the ``issue_id`` or the ``issue_to_id`` position.
    """

    issue_id: int
    issue_to_id: int
    relation_type: str

    def other_id(self, self_id: int) -> int:
        """Return the endpoint that is not ``self_id``."""
        if self.issue_id == self_id:
            return self.issue_to_id
        return self.issue_id


@dataclass(frozen=True)
class SourceRecord:
    """A Redmine issue with everything needed to migrate it."""

    id: int
    type: str
    title: str = ""
    description: str = ""
    status: str | None = None
    priority: str | None = None
    assignee: str | None = None
    author: str | None = None
    created_on: str | None = None
    updated_on: str | None = None
    closed_on: str | None = None
    start_date: str | None = None
    due_date: str | None = None
    estimated_hours: float | None = None
    done_ratio: int | None = None
    custom_fields: tuple[CustomFieldValue, ...] = ()
    journals: tuple[Journal, ...] = ()
    attachments: tuple[AttachmentRef, ...] = ()
    parent_id: int | None = None
    relations: tuple[RelationRef, ...] = ()
    children_ids: tuple[int, ...] = field(default=())


class TransformResult(NamedTuple):
    """Output of the field mapper for one record."""

    work_item_type: str
    fields: TargetFieldSet


@dataclass(frozen=True)
class RelationEdge:
    """A link resolved through the identity map, ready to be created.

    Exists only while relations are being resolved.
    """

    source_id: int
    from_target: int
    to_target: int
    link_type: str
    comment: str = ""
