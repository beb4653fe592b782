"""Check a field mapping against the trackers, statuses and fields that actually exist.

Every table entry is classified as valid or needing review. Entries that
need review do not stop a migration (unmapped values fall back to the
defaults) but usually point at a typo or a field still to be created in
Azure DevOps.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final

from .config import VALID_ADO_PRIORITIES

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .ado_utils import AdoClient
    from .config import FieldMappingConfig
    from .redmine_utils import RedmineClient

logger: logging.Logger = logging.getLogger(__name__)

REDMINE_STANDARD_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "id",
        "subject",
        "description",
        "status",
        "priority",
        "assigned_to",
        "author",
        "category",
        "version",
        "start_date",
        "due_date",
        "created_on",
        "updated_on",
        "closed_on",
        "done_ratio",
        "estimated_hours",
        "project",
        "tracker",
        "parent",
    }
)
ADO_CUSTOM_PREFIX: Final[str] = "Custom."

OK: Final[str] = "✓"
WARN: Final[str] = "⚠"
FAIL: Final[str] = "✗"


@dataclass
class SectionResult:
    """Validation outcome for one mapping table."""

    title: str
    valid: int = 0
    needs_review: int = 0
    lines: list[str] = field(default_factory=list)

    def ok(self, line: str) -> None:
        self.valid += 1
        self.lines.append(f"{OK} {line}")

    def review(self, line: str, *, marker: str = WARN) -> None:
        self.needs_review += 1
        self.lines.append(f"{marker} {line}")


@dataclass
class ReferenceData:
    """Names that exist in the two systems."""

    redmine_trackers: set[str] = field(default_factory=set)
    redmine_statuses: set[str] = field(default_factory=set)
    redmine_priorities: set[str] = field(default_factory=set)
    redmine_custom_fields: list[dict[str, Any]] = field(default_factory=list)
    ado_work_item_types: set[str] = field(default_factory=set)
    ado_fields: list[dict[str, Any]] = field(default_factory=list)

    @property
    def ado_field_refs(self) -> set[str]:
        return {str(f.get("referenceName")) for f in self.ado_fields if f.get("referenceName")}

    @property
    def redmine_custom_field_names(self) -> set[str]:
        return {str(f.get("name")) for f in self.redmine_custom_fields if f.get("name")}


@dataclass
class ValidationReport:
    sections: list[SectionResult]
    reference: ReferenceData

    @property
    def total_valid(self) -> int:
        return sum(s.valid for s in self.sections)

    @property
    def total_needs_review(self) -> int:
        return sum(s.needs_review for s in self.sections)

    @property
    def success(self) -> bool:
        return self.total_needs_review == 0


def _names(items: Iterable[dict[str, Any]]) -> set[str]:
    return {str(item["name"]) for item in items if item.get("name")}


def fetch_reference_data(redmine: RedmineClient, ado: AdoClient) -> ReferenceData:
    """Read trackers, statuses, priorities and fields from both systems."""
    logger.info("Fetching Redmine and Azure DevOps reference data")
    return ReferenceData(
        redmine_trackers=_names(redmine.get_trackers()),
        redmine_statuses=_names(redmine.get_issue_statuses()),
        redmine_priorities=_names(redmine.get_priorities()),
        redmine_custom_fields=redmine.get_custom_fields(),
        ado_work_item_types=_names(ado.get_work_item_types()),
        ado_fields=ado.get_fields(),
    )


def validate_work_item_types(mapping: FieldMappingConfig, ref: ReferenceData) -> SectionResult:
    result = SectionResult("WORK ITEM TYPE MAPPINGS")
    for tracker, work_item_type in mapping.work_item_types.entries.items():
        tracker_exists = tracker in ref.redmine_trackers
        type_exists = work_item_type in ref.ado_work_item_types
        line = f"{tracker} → {work_item_type}"
        if tracker_exists and type_exists:
            result.ok(line)
        elif type_exists:
            result.review(f"{line} (Redmine tracker not found)")
        elif tracker_exists:
            result.review(f"{line} (ADO work item type not found)", marker=FAIL)
        else:
            result.review(f"{line} (Both not found)", marker=FAIL)

    default_type = mapping.work_item_types.default
    if default_type is not None and default_type not in ref.ado_work_item_types:
        result.review(f"default → {default_type} (ADO work item type not found)", marker=FAIL)
    return result


def validate_field_targets(mapping: FieldMappingConfig, ref: ReferenceData) -> SectionResult:
    result = SectionResult("STANDARD FIELD MAPPINGS")
    ado_refs = ref.ado_field_refs
    for redmine_field, ado_field in mapping.field_targets.items():
        line = f"{redmine_field} → {ado_field}"
        if ado_field not in ado_refs and not ado_field.startswith(ADO_CUSTOM_PREFIX):
            result.review(f"{line} (ADO field not found - may need to create)", marker=FAIL)
        elif redmine_field not in REDMINE_STANDARD_FIELDS:
            result.review(f"{line} (not a Redmine standard field)")
        else:
            result.ok(line)
    return result


def validate_custom_fields(mapping: FieldMappingConfig, ref: ReferenceData) -> SectionResult:
    result = SectionResult("CUSTOM FIELD MAPPINGS")
    ado_refs = ref.ado_field_refs
    redmine_names = ref.redmine_custom_field_names
    for redmine_field, ado_field in mapping.custom_field_mappings.items():
        line = f"{redmine_field} → {ado_field}"
        if redmine_names and redmine_field not in redmine_names:
            result.review(f"{line} (Redmine custom field not found)", marker=FAIL)
        elif ado_field not in ado_refs:
            result.review(f"{line} (ADO custom field not found - may need to create)")
        else:
            result.ok(line)
    return result


def validate_statuses(mapping: FieldMappingConfig, ref: ReferenceData) -> SectionResult:
    result = SectionResult("STATUS MAPPINGS")
    tables = dict(mapping.status_mappings.per_type)
    if mapping.status_mappings.default:
        tables["default"] = mapping.status_mappings.default

    for work_item_type, table in tables.items():
        if work_item_type != "default" and work_item_type not in ref.ado_work_item_types:
            result.review(f"{work_item_type}: ADO work item type not found", marker=FAIL)
        for redmine_status, ado_state in table.items():
            line = f"{work_item_type}: {redmine_status} → {ado_state}"
            if redmine_status in ref.redmine_statuses:
                result.ok(line)
            else:
                result.review(f"{line} (Redmine status not found)")
    return result


def validate_priorities(mapping: FieldMappingConfig, ref: ReferenceData) -> SectionResult:
    result = SectionResult("PRIORITY MAPPINGS")
    for redmine_priority, ado_priority in mapping.priority_mappings.entries.items():
        line = f"{redmine_priority} → {ado_priority}"
        if ado_priority not in VALID_ADO_PRIORITIES:
            result.review(f"{line} (Invalid ADO priority - must be 1-4)", marker=FAIL)
        elif redmine_priority not in ref.redmine_priorities:
            result.review(f"{line} (Redmine priority not found)")
        else:
            result.ok(line)

    default = mapping.priority_mappings.default
    if default is not None and default not in VALID_ADO_PRIORITIES:
        result.review(f"default → {default} (Invalid ADO priority - must be 1-4)", marker=FAIL)
    return result


def validate_mapping(mapping: FieldMappingConfig, ref: ReferenceData) -> ValidationReport:
    sections = [
        validate_work_item_types(mapping, ref),
        validate_field_targets(mapping, ref),
        validate_custom_fields(mapping, ref),
        validate_statuses(mapping, ref),
        validate_priorities(mapping, ref),
    ]
    return ValidationReport(sections=sections, reference=ref)


def format_report(report: ValidationReport) -> str:
    rule = "=" * 60
    out: list[str] = []
    for section in report.sections:
        out.append(f"\n=== {section.title} ===\n")
        out.extend(section.lines or ["(nothing configured)"])
        out.append(f"\nValid: {section.valid}, Needs Review: {section.needs_review}")

    out += [f"\n{rule}", "VALIDATION SUMMARY", rule]
    out.append(f"\nTotal Valid Mappings: {report.total_valid}")
    out.append(f"Total Issues Found: {report.total_needs_review}")
    if report.success:
        out.append(f"\n{OK} All mappings validated successfully!")
    else:
        out.append(f"\n{WARN} Found {report.total_needs_review} mapping(s) that need review.")

    out += [f"\n{rule}", "AVAILABLE ADO CUSTOM FIELDS", rule]
    ado_custom = [f for f in report.reference.ado_fields if str(f.get("referenceName", "")).startswith(ADO_CUSTOM_PREFIX)]
    if ado_custom:
        out.extend(f"  - {f.get('name')} ({f.get('referenceName')}) - Type: {f.get('type')}" for f in ado_custom)
    else:
        out.append("  No custom fields found. You may need to create custom fields in ADO.")

    out += [f"\n{rule}", "AVAILABLE REDMINE CUSTOM FIELDS", rule]
    if report.reference.redmine_custom_fields:
        out.extend(
            f"  - {f.get('name')} (ID: {f.get('id')}) - Format: {f.get('field_format')}"
            for f in report.reference.redmine_custom_fields
        )
    else:
        out.append("  Unable to fetch (requires admin rights) or no custom fields exist.")

    return "\n".join(out)
