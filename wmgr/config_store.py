"""Read, write, validate and back up YAML workspace configuration files."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

__all__ = [
    "ConfigStoreError",
    "ConfigFileNotFoundError",
    "InvalidConfigPathError",
    "ConfigReadError",
    "ConfigWriteError",
    "YamlParsingError",
    "YamlSerializationError",
    "ConfigValidationError",
    "DirectoryCreationError",
    "BackupError",
    "WorkspaceConfig",
    "ConfigMetadata",
    "BackupConfig",
    "ValidationConfig",
    "ConfigStore",
]

PathLike = str | os.PathLike[str]

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class ConfigStoreError(Exception):
    """Base class for configuration store errors."""


class ConfigFileNotFoundError(ConfigStoreError):
    """The configuration file does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Configuration file not found at path: {path}")
        self.path = path


class InvalidConfigPathError(ConfigStoreError):
    """The path cannot name a configuration file."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Invalid configuration file path: {path}")
        self.path = path


class ConfigReadError(ConfigStoreError):
    """The configuration file could not be read."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Configuration file read failed: {reason}")


class ConfigWriteError(ConfigStoreError):
    """The configuration file could not be written or removed."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Configuration file write failed: {reason}")


class YamlParsingError(ConfigStoreError):
    """The file is not valid YAML or does not have the expected shape."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"YAML parsing failed: {reason}")


class YamlSerializationError(ConfigStoreError):
    """The value could not be turned into YAML."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"YAML serialization failed: {reason}")


class ConfigValidationError(ConfigStoreError):
    """The configuration breaks a validation rule."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Configuration validation failed: {reason}")
        self.reason = reason


class DirectoryCreationError(ConfigStoreError):
    """The directory holding the configuration could not be created."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Configuration directory creation failed: {reason}")


class BackupError(ConfigStoreError):
    """A backup copy could not be made."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Configuration backup failed: {reason}")


@dataclass
class WorkspaceConfig:
    """Settings of a workspace, as stored in its configuration file."""

    manifest_url: str
    manifest_branch: str
    shallow_clones: bool = False
    repo_groups: list[str] = field(default_factory=list)
    clone_all_repos: bool = False
    singular_remote: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Mapping in file order; an unset singular remote is left out."""
        data: dict[str, Any] = {
            "manifest_url": self.manifest_url,
            "manifest_branch": self.manifest_branch,
            "shallow_clones": self.shallow_clones,
            "repo_groups": list(self.repo_groups),
            "clone_all_repos": self.clone_all_repos,
        }
        if self.singular_remote is not None:
            data["singular_remote"] = self.singular_remote
        return data

    @classmethod
    def from_dict(cls, data: Any) -> WorkspaceConfig:
        """Build a config from parsed YAML, checking field types."""
        if not isinstance(data, dict):
            raise YamlParsingError("expected a mapping of workspace settings")

        def required_str(key: str) -> str:
            if key not in data:
                raise YamlParsingError(f"missing field `{key}`")
            value = data[key]
            if not isinstance(value, str):
                raise YamlParsingError(f"field `{key}` must be a string")
            return value

        def optional_bool(key: str) -> bool:
            value = data.get(key, False)
            if value is None:
                return False
            if not isinstance(value, bool):
                raise YamlParsingError(f"field `{key}` must be a boolean")
            return value

        groups = data.get("repo_groups") or []
        if not isinstance(groups, list) or not all(isinstance(g, str) for g in groups):
            raise YamlParsingError("field `repo_groups` must be a list of strings")

        remote = data.get("singular_remote")
        if remote is not None and not isinstance(remote, str):
            raise YamlParsingError("field `singular_remote` must be a string")

        return cls(
            manifest_url=required_str("manifest_url"),
            manifest_branch=required_str("manifest_branch"),
            shallow_clones=optional_bool("shallow_clones"),
            repo_groups=list(groups),
            clone_all_repos=optional_bool("clone_all_repos"),
            singular_remote=remote,
        )


@dataclass
class ConfigMetadata:
    """File-system facts about a configuration file."""

    path: Path
    last_modified: datetime
    size: int
    exists: bool


@dataclass
class BackupConfig:
    """When and how backup copies are made."""

    create_backup: bool = True
    max_backups: int = 5
    backup_suffix: str = ".bak"


@dataclass
class ValidationConfig:
    """When configurations are validated, and how strictly."""

    validate_on_read: bool = True
    validate_before_write: bool = True
    strict_validation: bool = False


def _check_length(name: str, value: str, maximum: int | None = None) -> None:
    if len(value) < 1 or (maximum is not None and len(value) > maximum):
        bound = f"between 1 and {maximum}" if maximum is not None else "at least 1"
        raise ConfigValidationError(f"{name} length must be {bound}")


def _to_plain(value: Any) -> Any:
    if isinstance(value, WorkspaceConfig):
        return value.to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return value


class ConfigStore:
    """Stores configuration files as YAML, with validation and backups."""

    def __init__(
        self,
        backup_config: BackupConfig | None = None,
        validation_config: ValidationConfig | None = None,
    ) -> None:
        self.backup_config = backup_config or BackupConfig()
        self.validation_config = validation_config or ValidationConfig()

    def read_workspace_config(self, config_path: PathLike) -> WorkspaceConfig:
        """Load and, if enabled, validate a workspace configuration."""
        path = Path(config_path)
        config = WorkspaceConfig.from_dict(self._load_yaml(path))
        if self.validation_config.validate_on_read:
            self.validate_workspace_config(config)
        return config

    def write_workspace_config(
        self, config_path: PathLike, config: WorkspaceConfig
    ) -> None:
        """Validate if enabled, back up any old file, then write the config."""
        if self.validation_config.validate_before_write:
            self.validate_workspace_config(config)
        self._write_yaml(Path(config_path), config.to_dict())

    def read_config(self, config_path: PathLike) -> Any:
        """Load any YAML document from a configuration file."""
        return self._load_yaml(Path(config_path))

    def write_config(self, config_path: PathLike, config: Any) -> None:
        """Write any YAML-representable value, backing up the old file."""
        self._write_yaml(Path(config_path), _to_plain(config))

    def get_config_metadata(self, config_path: PathLike) -> ConfigMetadata:
        """Size, modification time and existence of a configuration file."""
        path = Path(config_path)
        if not path.exists():
            return ConfigMetadata(path=path, last_modified=_EPOCH, size=0, exists=False)
        try:
            stat = path.stat()
        except OSError as exc:
            raise ConfigReadError(str(exc)) from exc
        return ConfigMetadata(
            path=path,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            size=stat.st_size,
            exists=True,
        )

    def config_exists(self, config_path: PathLike) -> bool:
        """True when the configuration file exists."""
        return Path(config_path).exists()

    def delete_config(self, config_path: PathLike) -> None:
        """Remove a configuration file, backing it up first if enabled."""
        path = Path(config_path)
        if not path.exists():
            return
        if self.backup_config.create_backup:
            self._create_backup(path)
        try:
            path.unlink()
        except OSError as exc:
            raise ConfigWriteError(str(exc)) from exc

    def validate_yaml_schema(self, config_path: PathLike) -> None:
        """Check that a file exists and holds syntactically valid YAML."""
        self._load_yaml(Path(config_path))

    def list_backups(self, config_path: PathLike) -> list[Path]:
        """Backup files of a configuration, newest first."""
        path = Path(config_path)
        base_name = path.name
        if not base_name:
            raise InvalidConfigPathError(str(path))
        parent = path.parent
        suffix = self.backup_config.backup_suffix
        try:
            entries = list(parent.iterdir())
        except OSError:
            entries = []
        backups = [
            entry
            for entry in entries
            if entry.name.startswith(base_name) and suffix in entry.name
        ]

        def mtime(entry: Path) -> float:
            try:
                return entry.stat().st_mtime
            except OSError:
                return 0.0

        backups.sort(key=mtime, reverse=True)
        return backups

    def validate_workspace_config(self, config: WorkspaceConfig) -> None:
        """Raise ConfigValidationError if the config breaks a rule."""
        _check_length("manifest_url", config.manifest_url)
        _check_length("manifest_branch", config.manifest_branch, 255)
        if len(config.repo_groups) < 1:
            raise ConfigValidationError("repo_groups must hold at least 1 entry")
        if config.singular_remote is not None:
            _check_length("singular_remote", config.singular_remote, 255)
        if self.validation_config.strict_validation:
            self._strict_validate(config)

    @staticmethod
    def _strict_validate(config: WorkspaceConfig) -> None:
        url = config.manifest_url
        if not url.startswith("http") and not url.startswith("git@"):
            raise ConfigValidationError(
                "Manifest URL must be a valid HTTP or SSH URL"
            )
        branch = config.manifest_branch
        if ".." in branch or branch.startswith("/"):
            raise ConfigValidationError("Invalid branch name format")
        if any(not group.strip() for group in config.repo_groups):
            raise ConfigValidationError("Repository group names cannot be empty")

    def _load_yaml(self, path: Path) -> Any:
        if not path.exists():
            raise ConfigFileNotFoundError(str(path))
        try:
            contents = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigReadError(str(exc)) from exc
        try:
            return yaml.safe_load(contents)
        except yaml.YAMLError as exc:
            raise YamlParsingError(str(exc)) from exc

    def _write_yaml(self, path: Path, data: Any) -> None:
        if self.backup_config.create_backup and path.exists():
            self._create_backup(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DirectoryCreationError(str(exc)) from exc
        try:
            content = yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
        except yaml.YAMLError as exc:
            raise YamlSerializationError(str(exc)) from exc
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise ConfigWriteError(str(exc)) from exc

    def _create_backup(self, path: Path) -> None:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        backup_path = path.with_name(
            f"{path.name}{self.backup_config.backup_suffix}_{timestamp}"
        )
        try:
            backup_path.write_bytes(path.read_bytes())
        except OSError as exc:
            raise BackupError(str(exc)) from exc
        self._cleanup_old_backups(path)

    def _cleanup_old_backups(self, path: Path) -> None:
        for old in self.list_backups(path)[self.backup_config.max_backups :]:
            try:
                old.unlink()
            except OSError:
                pass