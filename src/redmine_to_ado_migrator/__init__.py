"""
Redmine to Azure DevOps Migration Tool

Migrates Redmine issues to Azure DevOps work items including comments,
attachments, parent/child hierarchy and issue relations.
"""

from __future__ import annotations

from .cli import main
from .exceptions import (
    ConfigurationError,
    ConnectivityError,
    DuplicateMappingError,
    MigrationError,
    SourceError,
    TargetError,
)
from .field_mapper import FieldMapper
from .identity_map import IdentityMap
from .orchestrator import MigrationResult, MigrationState, Migrator
from .pacing import Pacer
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "ConnectivityError",
    "DuplicateMappingError",
    "FieldMapper",
    "IdentityMap",
    "MigrationError",
    "MigrationResult",
    "MigrationState",
    "Migrator",
    "Pacer",
    "SourceError",
    "TargetError",
    "main",
    "setup_logging",
]
