"""Translate Redmine issues into Azure DevOps work item fields.

The mapper is a pure function of its configuration: it performs no I/O and
never raises for missing optional data. Absent source values produce no
target field at all, so ADO keeps its own defaults instead of being nulled
out.

Lookup order for every table is fixed:

    specific entry -> configured default -> built-in fallback

Status has one more level in front: the table for the resolved work item
type is consulted before the shared ``default`` table.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

from .models import TargetFieldSet, TransformResult

if TYPE_CHECKING:
    from .config import FieldMappingConfig
    from .models import SourceRecord

logger: logging.Logger = logging.getLogger(__name__)

FALLBACK_WORK_ITEM_TYPE: Final[str] = "Issue"
FALLBACK_STATUS: Final[str] = "New"
FALLBACK_PRIORITY: Final[int] = 3
FALLBACK_LINK_TYPE: Final[str] = "System.LinkTypes.Related"
FALLBACK_TITLE: Final[str] = "Untitled"

HIERARCHY_LINK_TYPE: Final[str] = "System.LinkTypes.Hierarchy-Reverse"


def is_empty(value: object) -> bool:
    """Return True for values that must not be copied to the target."""
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict)):
        return len(value) == 0
    return False


class FieldMapper:
    """Maps a SourceRecord to a work item type and field set."""

    def __init__(self, mapping: FieldMappingConfig, *, source_base_url: str = "") -> None:
        self._mapping: FieldMappingConfig = mapping
        self._source_base_url: str = source_base_url.rstrip("/")

    def map_work_item_type(self, tracker: str | None) -> str:
        return self._mapping.work_item_types.resolve(tracker) or FALLBACK_WORK_ITEM_TYPE

    def map_status(self, status: str | None, work_item_type: str) -> str:
        table = self._mapping.status_mappings
        if status is not None:
            specific = table.per_type.get(work_item_type, {}).get(status)
            if specific:
                return specific
            shared = table.default.get(status)
            if shared:
                return shared
        return FALLBACK_STATUS

    def map_priority(self, priority: str | None) -> int:
        value = self._mapping.priority_mappings.resolve(priority)
        if value is None:
            return FALLBACK_PRIORITY
        return int(value)

    def map_relation_kind(self, relation_type: str | None) -> str:
        return self._mapping.relation_mappings.resolve(relation_type) or FALLBACK_LINK_TYPE

    def source_url(self, record_id: int) -> str:
        return f"{self._source_base_url}/issues/{record_id}"

    def compose_description(self, record: SourceRecord) -> str:
        """Build the description: id banner, link banner and separator, then the original body."""
        options = self._mapping.options
        description = ""

        if options.preserve_redmine_id:
            description += f"<b>Migrated from Redmine Issue #{record.id}</b><br/>"

        if options.add_redmine_link:
            url = self.source_url(record.id)
            description += f'<b>Original URL:</b> <a href="{url}">{url}</a><br/><br/>'
            description += "<hr/><br/>"

        if record.description:
            description += record.description

        return description

    def transform(self, record: SourceRecord) -> TransformResult:
        """Map one record. Deterministic and side-effect free."""
        targets = self._mapping.field_targets
        work_item_type = self.map_work_item_type(record.type)
        fields: TargetFieldSet = {}

        fields[targets["subject"]] = record.title or FALLBACK_TITLE

        description = self.compose_description(record)
        if description:
            fields[targets["description"]] = description

        if not is_empty(record.status):
            fields[targets["status"]] = self.map_status(record.status, work_item_type)

        if not is_empty(record.priority):
            fields[targets["priority"]] = self.map_priority(record.priority)

        scalar_copies: tuple[tuple[str, object], ...] = (
            ("assigned_to", record.assignee),
            ("start_date", record.start_date),
            ("due_date", record.due_date),
            ("created_on", record.created_on),
            ("updated_on", record.updated_on),
            ("closed_on", record.closed_on),
            ("estimated_hours", record.estimated_hours),
            ("done_ratio", record.done_ratio),
        )
        for source_field, value in scalar_copies:
            if not is_empty(value):
                fields[targets[source_field]] = value

        for custom_field in record.custom_fields:
            target_field = self._mapping.custom_field_mappings.get(custom_field.name)
            if target_field and not is_empty(custom_field.value):
                fields[target_field] = custom_field.value

        return TransformResult(work_item_type=work_item_type, fields=fields)
