"""Tests for field mapping validation."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from redmine_to_ado_migrator.config import FieldMappingConfig, MappingWithDefault, StatusTable
from redmine_to_ado_migrator.validation import (
    ReferenceData,
    fetch_reference_data,
    format_report,
    validate_custom_fields,
    validate_field_targets,
    validate_mapping,
    validate_priorities,
    validate_statuses,
    validate_work_item_types,
)


@pytest.mark.unit
class TestValidation:
    def setup_method(self) -> None:
        self.ref = ReferenceData(
            redmine_trackers={"Bug", "Feature", "Support"},
            redmine_statuses={"New", "In Progress", "Closed"},
            redmine_priorities={"Low", "Normal", "High", "Urgent"},
            redmine_custom_fields=[{"id": 1, "name": "Customer", "field_format": "string"}],
            ado_work_item_types={"Issue", "Task", "User Story"},
            ado_fields=[
                {"name": "Title", "referenceName": "System.Title", "type": "string"},
                {"name": "State", "referenceName": "System.State", "type": "string"},
                {"name": "Customer", "referenceName": "Custom.Customer", "type": "string"},
            ],
        )

    def test_work_item_types(self) -> None:
        mapping = FieldMappingConfig(
            work_item_types=MappingWithDefault(
                {"Bug": "Issue", "Defect": "Issue", "Feature": "Epic", "Chore": "Epic"}, default="Nope"
            )
        )

        result = validate_work_item_types(mapping, self.ref)

        assert result.valid == 1
        assert result.needs_review == 4
        assert any("Defect → Issue (Redmine tracker not found)" in line for line in result.lines)
        assert any("Feature → Epic (ADO work item type not found)" in line for line in result.lines)
        assert any("Chore → Epic (Both not found)" in line for line in result.lines)
        assert any("default → Nope" in line for line in result.lines)

    def test_field_targets(self) -> None:
        mapping = FieldMappingConfig(
            field_targets={
                "subject": "System.Title",
                "status": "System.State",
                "done_ratio": "Custom.PercentDone",
                "priority": "Microsoft.VSTS.Common.Priority",
                "story_points": "System.Title",
            }
        )

        result = validate_field_targets(mapping, self.ref)

        # Custom.* targets are accepted even if they do not exist yet
        assert result.valid == 3
        assert result.needs_review == 2
        assert any("priority" in line and "ADO field not found" in line for line in result.lines)
        assert any("story_points" in line and "not a Redmine standard field" in line for line in result.lines)

    def test_custom_fields(self) -> None:
        mapping = FieldMappingConfig(
            custom_field_mappings={"Customer": "Custom.Customer", "Region": "Custom.Region"}
        )

        result = validate_custom_fields(mapping, self.ref)

        assert result.valid == 1
        assert result.needs_review == 1
        assert any("Region" in line and "Redmine custom field not found" in line for line in result.lines)

    def test_custom_fields_unknown_when_redmine_list_unavailable(self) -> None:
        self.ref.redmine_custom_fields = []
        mapping = FieldMappingConfig(custom_field_mappings={"Region": "Custom.Region"})

        result = validate_custom_fields(mapping, self.ref)

        assert any("ADO custom field not found" in line for line in result.lines)

    def test_statuses(self) -> None:
        mapping = FieldMappingConfig(
            status_mappings=StatusTable(
                per_type={"Issue": {"New": "To Do", "Feedback": "Doing"}, "Epic": {"New": "New"}},
                default={"Closed": "Closed"},
            )
        )

        result = validate_statuses(mapping, self.ref)

        assert result.valid == 3
        assert result.needs_review == 2
        assert any("Epic: ADO work item type not found" in line for line in result.lines)
        assert any("Issue: Feedback → Doing (Redmine status not found)" in line for line in result.lines)

    def test_priorities(self) -> None:
        mapping = FieldMappingConfig(
            priority_mappings=MappingWithDefault({"High": 2, "Urgent": 0, "Blocker": 1}, default=5)
        )

        result = validate_priorities(mapping, self.ref)

        assert result.valid == 1
        assert result.needs_review == 3
        assert any("Urgent → 0 (Invalid ADO priority - must be 1-4)" in line for line in result.lines)
        assert any("Blocker → 1 (Redmine priority not found)" in line for line in result.lines)
        assert any("default → 5" in line for line in result.lines)

    def test_clean_mapping_succeeds(self) -> None:
        mapping = FieldMappingConfig(
            work_item_types=MappingWithDefault({"Bug": "Issue"}, default="Task"),
            priority_mappings=MappingWithDefault({"High": 2}, default=3),
            field_targets={"subject": "System.Title"},
        )

        report = validate_mapping(mapping, self.ref)

        assert report.success
        assert report.total_needs_review == 0
        assert report.total_valid == 3

    def test_format_report(self) -> None:
        mapping = FieldMappingConfig(priority_mappings=MappingWithDefault({"High": 7}))
        text = format_report(validate_mapping(mapping, self.ref))

        assert "=== PRIORITY MAPPINGS ===" in text
        assert "Found" in text
        assert "need review" in text
        assert "Customer (Custom.Customer) - Type: string" in text
        assert "Customer (ID: 1) - Format: string" in text


@pytest.mark.unit
class TestFetchReferenceData:
    def test_collects_names_from_both_systems(self) -> None:
        redmine = MagicMock()
        redmine.get_trackers.return_value = [{"id": 1, "name": "Bug"}]
        redmine.get_issue_statuses.return_value = [{"id": 1, "name": "New"}]
        redmine.get_priorities.return_value = [{"id": 2, "name": "Normal"}]
        redmine.get_custom_fields.return_value = []
        ado = MagicMock()
        ado.get_work_item_types.return_value = [{"name": "Issue"}, {"name": "Task"}]
        ado.get_fields.return_value = [{"referenceName": "System.Title"}]

        ref = fetch_reference_data(redmine, ado)

        assert ref.redmine_trackers == {"Bug"}
        assert ref.redmine_statuses == {"New"}
        assert ref.redmine_priorities == {"Normal"}
        assert ref.ado_work_item_types == {"Issue", "Task"}
        assert ref.ado_field_refs == {"System.Title"}
