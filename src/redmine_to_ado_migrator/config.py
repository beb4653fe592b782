"""
Configuration loading for the Redmine to Azure DevOps migration tool.

Two YAML files drive a migration:

- ``config.yaml``: connection settings for both systems
- ``field-mapping.yaml``: type/status/priority/relation/custom field tables
  and the migration options
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Generic, TypeVar

import yaml

from . import utils
from .exceptions import ConfigurationError

logger: logging.Logger = logging.getLogger(__name__)

V = TypeVar("V")

DEFAULT_CONFIG_PATH: Final[str] = "config.yaml"
DEFAULT_MAPPING_PATH: Final[str] = "field-mapping.yaml"
DEFAULT_MAPPING_OUTPUT: Final[str] = "migration-mapping.json"

_REDMINE_KEY_ENV_VAR: Final[str] = "REDMINE_API_KEY"
_ADO_PAT_ENV_VAR: Final[str] = "ADO_PAT"  # noqa: S105

_DEFAULT_KEY: Final[str] = "default"

VALID_ADO_PRIORITIES: Final[frozenset[int]] = frozenset({1, 2, 3, 4})

# Redmine standard field -> ADO field reference name
DEFAULT_FIELD_TARGETS: Final[dict[str, str]] = {
    "subject": "System.Title",
    "description": "System.Description",
    "status": "System.State",
    "priority": "Microsoft.VSTS.Common.Priority",
    "assigned_to": "System.AssignedTo",
    "start_date": "Microsoft.VSTS.Scheduling.StartDate",
    "due_date": "Microsoft.VSTS.Scheduling.DueDate",
    "created_on": "System.CreatedDate",
    "updated_on": "System.ChangedDate",
    "closed_on": "Microsoft.VSTS.Common.ClosedDate",
    "estimated_hours": "Microsoft.VSTS.Scheduling.OriginalEstimate",
    "done_ratio": "Microsoft.VSTS.Scheduling.CompletedWork",
}


@dataclass(frozen=True)
class MappingWithDefault(Generic[V]):
    """A lookup table with an explicit fallback value.

    In YAML the fallback is written as a ``default`` key next to the
    regular entries.
    """

    entries: Mapping[str, V] = field(default_factory=dict)
    default: V | None = None

    def lookup(self, key: str | None) -> V | None:
        """Return the entry for ``key`` without falling back."""
        if key is None:
            return None
        return self.entries.get(key)

    def resolve(self, key: str | None) -> V | None:
        """Return the entry for ``key``, else the configured default."""
        value = self.lookup(key)
        if value is not None:
            return value
        return self.default

    @classmethod
    def from_yaml(cls, raw: object, section: str) -> MappingWithDefault[Any]:
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            msg = f"'{section}' must be a mapping, got {type(raw).__name__}"
            raise ConfigurationError(msg)
        entries = {str(k): v for k, v in raw.items() if k != _DEFAULT_KEY}
        return cls(entries=entries, default=raw.get(_DEFAULT_KEY))


def _priority_table(raw: object) -> MappingWithDefault[int]:
    """Parse ``priority_mappings``; every value must be an ADO priority (1-4)."""
    table = MappingWithDefault.from_yaml(raw, "priority_mappings")
    values = dict(table.entries)
    if table.default is not None:
        values[_DEFAULT_KEY] = table.default
    for name, value in values.items():
        if isinstance(value, bool) or not isinstance(value, int) or value not in VALID_ADO_PRIORITIES:
            msg = f"'priority_mappings.{name}' must be an integer from 1 to 4, got {value!r}"
            raise ConfigurationError(msg)
    return table


@dataclass(frozen=True)
class StatusTable:
    """Two-level status table: per target work item type, then a shared default table."""

    per_type: Mapping[str, Mapping[str, str]] = field(default_factory=dict)
    default: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_yaml(cls, raw: object) -> StatusTable:
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            msg = f"'status_mappings' must be a mapping, got {type(raw).__name__}"
            raise ConfigurationError(msg)

        per_type: dict[str, dict[str, str]] = {}
        for work_item_type, table in raw.items():
            if table is None:
                continue
            if not isinstance(table, dict):
                msg = f"'status_mappings.{work_item_type}' must be a mapping"
                raise ConfigurationError(msg)
            per_type[str(work_item_type)] = {str(k): str(v) for k, v in table.items()}

        default = per_type.pop(_DEFAULT_KEY, {})
        return cls(per_type=per_type, default=default)


@dataclass(frozen=True)
class MigrationOptions:
    """Toggles and tuning knobs from the ``migration_options`` section."""

    migrate_comments: bool = True
    migrate_attachments: bool = True
    migrate_relations: bool = True
    migrate_subtasks: bool = True
    preserve_redmine_id: bool = False
    add_redmine_link: bool = False
    delay_ms: int = 100
    batch_size: int = 50
    concurrency: int = 1
    mapping_file: str = DEFAULT_MAPPING_OUTPUT

    def __post_init__(self) -> None:
        if self.delay_ms <= 0:
            msg = f"migration_options.delay_ms must be positive, got {self.delay_ms}"
            raise ConfigurationError(msg)
        if self.batch_size <= 0:
            msg = f"migration_options.batch_size must be positive, got {self.batch_size}"
            raise ConfigurationError(msg)
        if self.concurrency <= 0:
            msg = f"migration_options.concurrency must be positive, got {self.concurrency}"
            raise ConfigurationError(msg)

    @classmethod
    def from_yaml(cls, raw: object) -> MigrationOptions:
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            msg = "'migration_options' must be a mapping"
            raise ConfigurationError(msg)

        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(raw) - known)
        if unknown:
            logger.warning(f"Ignoring unknown migration options: {', '.join(map(str, unknown))}")

        values = {k: v for k, v in raw.items() if k in known and v is not None}
        try:
            return cls(**values)
        except TypeError as e:
            msg = f"Invalid migration_options: {e}"
            raise ConfigurationError(msg) from e


@dataclass(frozen=True)
class FieldMappingConfig:
    """Everything the field mapper and orchestrator read from ``field-mapping.yaml``."""

    work_item_types: MappingWithDefault[str] = field(default_factory=MappingWithDefault)
    status_mappings: StatusTable = field(default_factory=StatusTable)
    priority_mappings: MappingWithDefault[int] = field(default_factory=MappingWithDefault)
    relation_mappings: MappingWithDefault[str] = field(default_factory=MappingWithDefault)
    custom_field_mappings: Mapping[str, str] = field(default_factory=dict)
    field_targets: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_FIELD_TARGETS))
    options: MigrationOptions = field(default_factory=MigrationOptions)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> FieldMappingConfig:
        custom = raw.get("custom_field_mappings") or {}
        if not isinstance(custom, dict):
            msg = "'custom_field_mappings' must be a mapping"
            raise ConfigurationError(msg)

        overrides = raw.get("field_mappings") or {}
        if not isinstance(overrides, dict):
            msg = "'field_mappings' must be a mapping"
            raise ConfigurationError(msg)

        return cls(
            work_item_types=MappingWithDefault.from_yaml(raw.get("work_item_types"), "work_item_types"),
            status_mappings=StatusTable.from_yaml(raw.get("status_mappings")),
            priority_mappings=_priority_table(raw.get("priority_mappings")),
            relation_mappings=MappingWithDefault.from_yaml(raw.get("relation_mappings"), "relation_mappings"),
            custom_field_mappings={str(k): str(v) for k, v in custom.items()},
            field_targets=DEFAULT_FIELD_TARGETS | {str(k): str(v) for k, v in overrides.items()},
            options=MigrationOptions.from_yaml(raw.get("migration_options")),
        )


@dataclass(frozen=True)
class RedmineSettings:
    base_url: str
    api_key: str
    project_identifier: str | None = None
    verify_ssl: bool = True


@dataclass(frozen=True)
class AzureDevOpsSettings:
    organization: str
    project: str
    pat: str
    base_url: str = ""

    @property
    def organization_url(self) -> str:
        return (self.base_url or f"https://dev.azure.com/{self.organization}").rstrip("/")

    def work_item_url(self, work_item_id: int) -> str:
        return f"{self.organization_url}/{self.project}/_workitems/edit/{work_item_id}"


@dataclass(frozen=True)
class AppConfig:
    redmine: RedmineSettings
    azure_devops: AzureDevOpsSettings
    mapping: FieldMappingConfig


def read_yaml(path: str | Path) -> dict[str, Any]:
    """Read a YAML file that must contain a mapping at the top level."""
    yaml_path = Path(path)
    try:
        with yaml_path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        msg = f"Configuration file not found: {yaml_path}"
        raise ConfigurationError(msg) from e
    except (OSError, yaml.YAMLError) as e:
        msg = f"Could not parse YAML configuration file {yaml_path}: {e}"
        raise ConfigurationError(msg) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Configuration file {yaml_path} must contain a mapping at the top level"
        raise ConfigurationError(msg)
    return data


def _resolve_secret(
    *,
    name: str,
    pass_path: str | None,
    configured: object,
    env_var: str,
) -> str:
    """Resolve a credential from a pass path, the YAML value, or an environment variable."""
    if pass_path:
        try:
            return utils.get_pass_value(pass_path)
        except (ValueError, utils.PassError) as e:
            msg = f"Could not read {name} from pass path '{pass_path}': {e}"
            raise ConfigurationError(msg) from e

    if configured:
        return str(configured)

    value = os.environ.get(env_var)
    if value:
        return value

    msg = f"Missing {name}: set it in the configuration file, via {env_var}, or with a pass path"
    raise ConfigurationError(msg)


def _require(section: Mapping[str, Any], key: str, section_name: str) -> str:
    value = section.get(key)
    if not value:
        msg = f"Missing required configuration value '{section_name}.{key}'"
        raise ConfigurationError(msg)
    return str(value)


def _bool_setting(section: Mapping[str, Any], key: str, section_name: str, *, default: bool) -> bool:
    value = section.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        msg = f"'{section_name}.{key}' must be true or false, got {value!r}"
        raise ConfigurationError(msg)
    return value


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        msg = f"'{name}' must be a mapping"
        raise ConfigurationError(msg)
    return section


def load_field_mapping(path: str | Path = DEFAULT_MAPPING_PATH) -> FieldMappingConfig:
    return FieldMappingConfig.from_dict(read_yaml(path))


def load_config(
    config_path: str | Path = DEFAULT_CONFIG_PATH,
    mapping_path: str | Path = DEFAULT_MAPPING_PATH,
    *,
    redmine_pass_path: str | None = None,
    ado_pass_path: str | None = None,
) -> AppConfig:
    """Load and validate both configuration files.

    Raises:
        ConfigurationError: If a file is missing or a required value is absent
    """
    raw = read_yaml(config_path)
    redmine_raw = _section(raw, "redmine")
    ado_raw = _section(raw, "azure_devops")

    redmine = RedmineSettings(
        base_url=_require(redmine_raw, "base_url", "redmine").rstrip("/"),
        api_key=_resolve_secret(
            name="Redmine API key",
            pass_path=redmine_pass_path,
            configured=redmine_raw.get("api_key"),
            env_var=_REDMINE_KEY_ENV_VAR,
        ),
        project_identifier=redmine_raw.get("project_identifier") or None,
        verify_ssl=_bool_setting(redmine_raw, "verify_ssl", "redmine", default=True),
    )

    azure_devops = AzureDevOpsSettings(
        organization=_require(ado_raw, "organization", "azure_devops"),
        project=_require(ado_raw, "project", "azure_devops"),
        pat=_resolve_secret(
            name="Azure DevOps PAT",
            pass_path=ado_pass_path,
            configured=ado_raw.get("pat"),
            env_var=_ADO_PAT_ENV_VAR,
        ),
        base_url=str(ado_raw.get("base_url") or ""),
    )

    mapping = load_field_mapping(mapping_path)
    logger.debug(f"Loaded configuration from {config_path} and {mapping_path}")
    return AppConfig(redmine=redmine, azure_devops=azure_devops, mapping=mapping)
