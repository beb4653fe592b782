"""
Custom exception classes for the Redmine to Azure DevOps migration tool.
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base exception for migration errors."""


class ConfigurationError(MigrationError):
    """Raised when required configuration is missing or invalid."""


class ConnectivityError(MigrationError):
    """Raised when a system cannot be reached or authentication fails."""


class SourceError(MigrationError):
    """Raised when a Redmine API call fails."""


class TargetError(MigrationError):
    """Raised when an Azure DevOps API call fails."""


class DuplicateMappingError(MigrationError):
    """Raised when a source id is mapped twice in one run."""

    def __init__(self, source_id: int, existing_target_id: int, new_target_id: int) -> None:
        self.source_id: int = source_id
        self.existing_target_id: int = existing_target_id
        self.new_target_id: int = new_target_id
        super().__init__(
            f"Redmine issue #{source_id} is already mapped to work item #{existing_target_id}, "
            f"refusing to map it to #{new_target_id}"
        )
