"""Store manifests on disk and carry out the copy and symlink operations they declare."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .manifest import (
    FileCopy,
    FileSymlink,
    Manifest,
    ManifestError,
    ManifestRepo,
    dump_manifest,
    filter_by_groups,
    list_groups,
    load_manifest,
    validate_manifest,
)

__all__ = [
    "ManifestStoreError",
    "ManifestFileNotFoundError",
    "ManifestReadError",
    "ManifestWriteError",
    "PathValidationError",
    "DirectoryCreationError",
    "BackupError",
    "ManifestMetadata",
    "FileOperationConfig",
    "FileOperationResult",
    "ManifestProcessingOptions",
    "ManifestStore",
]

PathLike = str | os.PathLike[str]

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class ManifestStoreError(Exception):
    """Base class for manifest store errors."""


class ManifestFileNotFoundError(ManifestStoreError):
    """The manifest file does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Manifest file not found at path: {path}")
        self.path = path


class ManifestReadError(ManifestStoreError):
    """The manifest file could not be read or parsed."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Manifest file read failed: {reason}")


class ManifestWriteError(ManifestStoreError):
    """The manifest file could not be written or removed."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Manifest file write failed: {reason}")


class PathValidationError(ManifestStoreError):
    """A file operation path is unsafe or inconsistent."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Path validation failed: {reason}")
        self.reason = reason


class DirectoryCreationError(ManifestStoreError):
    """A parent directory could not be created."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Directory creation failed: {reason}")


class BackupError(ManifestStoreError):
    """A backup copy could not be made."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Backup operation failed: {reason}")


@dataclass
class ManifestMetadata:
    """File-system facts about a manifest file, with its repository and group counts."""

    path: Path
    last_modified: datetime = _EPOCH
    size: int = 0
    exists: bool = False
    repo_count: int = 0
    group_count: int = 0


@dataclass
class FileOperationConfig:
    """How copy and symlink operations treat existing files."""

    create_backup: bool = True
    overwrite_existing: bool = False
    create_parent_dirs: bool = True
    validate_paths: bool = True
    max_backups: int = 5


@dataclass
class FileOperationResult:
    """Outcome of one copy or symlink operation."""

    source: Path
    destination: Path
    operation_type: str
    success: bool = False
    error: str | None = None
    backup_created: bool = False


@dataclass
class ManifestProcessingOptions:
    """Which manifest operations run and whether manifests are validated."""

    process_copy_operations: bool = True
    process_symlink_operations: bool = True
    validate_manifest: bool = True
    base_directory: Path | None = None
    file_operation_config: FileOperationConfig = field(default_factory=FileOperationConfig)


def _service_error(exc: ManifestError) -> ManifestStoreError:
    return ManifestStoreError(f"Manifest service error: {exc}")


class ManifestStore:
    """Reads and writes manifest files and applies their file operations."""

    def __init__(self, options: ManifestProcessingOptions | None = None) -> None:
        self.options = options or ManifestProcessingOptions()

    @property
    def _file_config(self) -> FileOperationConfig:
        return self.options.file_operation_config

    def read_manifest(self, manifest_path: PathLike) -> Manifest:
        """Load a manifest, validating it and its file operations if enabled."""
        path = Path(manifest_path)
        if not path.exists():
            raise ManifestFileNotFoundError(str(path))
        try:
            manifest = load_manifest(path)
        except ManifestError as exc:
            raise ManifestReadError(str(exc)) from exc
        if self.options.validate_manifest:
            try:
                validate_manifest(manifest)
            except ManifestError as exc:
                raise _service_error(exc) from exc
            self._validate_file_operations(manifest, path)
        return manifest

    def write_manifest(self, manifest_path: PathLike, manifest: Manifest) -> None:
        """Validate if enabled, back up any old file, then write the manifest."""
        path = Path(manifest_path)
        if self.options.validate_manifest:
            try:
                validate_manifest(manifest)
            except ManifestError as exc:
                raise _service_error(exc) from exc
        if self._file_config.create_backup and path.exists():
            self._create_backup(path)
        parent = path.parent
        if self._file_config.create_parent_dirs and not parent.exists():
            try:
                parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise DirectoryCreationError(str(exc)) from exc
        content = dump_manifest(manifest)
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise ManifestWriteError(str(exc)) from exc

    def process_copy_operations(
        self, manifest: Manifest, workspace_root: PathLike
    ) -> list[FileOperationResult]:
        """Carry out every copy operation of the manifest, in order."""
        if not self.options.process_copy_operations:
            return []
        root = Path(workspace_root)
        return [
            self._execute_copy(copy_op, repo, root)
            for repo in manifest.repos
            for copy_op in repo.copy or []
        ]

    def process_symlink_operations(
        self, manifest: Manifest, workspace_root: PathLike
    ) -> list[FileOperationResult]:
        """Carry out every symlink operation of the manifest, in order."""
        if not self.options.process_symlink_operations:
            return []
        root = Path(workspace_root)
        return [
            self._execute_symlink(link_op, root)
            for repo in manifest.repos
            for link_op in repo.symlink or []
        ]

    def process_all_file_operations(
        self, manifest: Manifest, workspace_root: PathLike
    ) -> list[FileOperationResult]:
        """Copy operations first, then symlink operations."""
        return self.process_copy_operations(
            manifest, workspace_root
        ) + self.process_symlink_operations(manifest, workspace_root)

    def get_manifest_metadata(self, manifest_path: PathLike) -> ManifestMetadata:
        """File facts plus repository and group counts when the manifest reads cleanly."""
        path = Path(manifest_path)
        metadata = ManifestMetadata(path=path)
        if not path.exists():
            return metadata
        try:
            stat = path.stat()
        except OSError as exc:
            raise ManifestReadError(str(exc)) from exc
        metadata.last_modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        metadata.size = stat.st_size
        metadata.exists = True
        try:
            manifest = self.read_manifest(path)
        except ManifestStoreError:
            return metadata
        metadata.repo_count = len(manifest.repos)
        metadata.group_count = len(manifest.groups or {})
        return metadata

    def manifest_exists(self, manifest_path: PathLike) -> bool:
        """True when the manifest file exists."""
        return Path(manifest_path).exists()

    def delete_manifest(self, manifest_path: PathLike) -> None:
        """Remove a manifest file, backing it up first if enabled."""
        path = Path(manifest_path)
        if not path.exists():
            return
        if self._file_config.create_backup:
            self._create_backup(path)
        try:
            path.unlink()
        except OSError as exc:
            raise ManifestWriteError(str(exc)) from exc

    def filter_manifest_by_groups(
        self, manifest: Manifest, group_names: list[str]
    ) -> Manifest:
        """Manifest holding only the repositories of the named groups."""
        try:
            return filter_by_groups(manifest, group_names)
        except ManifestError as exc:
            raise _service_error(exc) from exc

    def list_manifest_groups(self, manifest: Manifest) -> list[str]:
        """Names of the manifest's groups."""
        return list_groups(manifest)

    def validate_copy_paths(self, source_path: PathLike, dest_path: PathLike) -> None:
        """Reject traversal in either path and identical source and destination."""
        source, dest = Path(source_path), Path(dest_path)
        if ".." in str(source):
            raise PathValidationError(f"Source path contains path traversal: {source}")
        if ".." in str(dest):
            raise PathValidationError(
                f"Destination path contains path traversal: {dest}"
            )
        if source == dest:
            raise PathValidationError("Source and destination paths are the same")

    def validate_symlink_paths(
        self, source_path: PathLike, target_path: PathLike
    ) -> None:
        """Reject traversal in the link path, and in absolute targets."""
        source, target = Path(source_path), Path(target_path)
        if ".." in str(source):
            raise PathValidationError(f"Source path contains path traversal: {source}")
        if target.is_absolute() and ".." in str(target):
            raise PathValidationError(f"Target path contains path traversal: {target}")

    def _validate_file_operations(self, manifest: Manifest, base_path: Path) -> None:
        base_dir = base_path.parent
        for repo in manifest.repos:
            for copy_op in repo.copy or []:
                self.validate_copy_paths(
                    base_dir / repo.dest / copy_op.file, base_dir / copy_op.dest
                )
            for link_op in repo.symlink or []:
                self.validate_symlink_paths(base_dir / link_op.source, link_op.target)

    def _execute_copy(
        self, copy_op: FileCopy, repo: ManifestRepo, root: Path
    ) -> FileOperationResult:
        source = root / repo.dest / copy_op.file
        dest = root / copy_op.dest
        result = FileOperationResult(source=source, destination=dest, operation_type="copy")
        config = self._file_config

        if config.validate_paths:
            try:
                self.validate_copy_paths(source, dest)
            except PathValidationError as exc:
                result.error = str(exc)
                return result

        if config.create_backup and dest.exists():
            try:
                self._create_backup(dest)
            except ManifestStoreError as exc:
                result.error = f"Backup failed: {exc}"
                return result
            result.backup_created = True

        if config.create_parent_dirs:
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                result.error = f"Failed to create parent directory: {exc}"
                return result

        if dest.exists() and not config.overwrite_existing:
            result.error = "Destination exists and overwrite is disabled"
            return result

        try:
            shutil.copy(source, dest)
        except OSError as exc:
            result.error = str(exc)
        else:
            result.success = True
        return result

    def _execute_symlink(self, link_op: FileSymlink, root: Path) -> FileOperationResult:
        source = root / link_op.source
        target = Path(link_op.target)
        result = FileOperationResult(
            source=source, destination=target, operation_type="symlink"
        )
        config = self._file_config

        if config.validate_paths:
            try:
                self.validate_symlink_paths(source, target)
            except PathValidationError as exc:
                result.error = str(exc)
                return result

        if config.create_backup and source.exists():
            try:
                self._create_backup(source)
            except ManifestStoreError as exc:
                result.error = f"Backup failed: {exc}"
                return result
            result.backup_created = True

        if config.create_parent_dirs:
            try:
                source.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                result.error = f"Failed to create parent directory: {exc}"
                return result

        if source.exists() and not config.overwrite_existing:
            result.error = "Source exists and overwrite is disabled"
            return result

        if source.is_symlink():
            try:
                source.unlink()
            except OSError as exc:
                result.error = f"Failed to remove existing symlink: {exc}"
                return result

        try:
            os.symlink(target, source)
        except OSError as exc:
            result.error = str(exc)
        else:
            result.success = True
        return result

    def _create_backup(self, path: Path) -> None:
        if not path.exists():
            return
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        backup_path = path.with_name(f"{path.name}.bak_{timestamp}")
        try:
            shutil.copy(path, backup_path)
        except OSError as exc:
            raise BackupError(str(exc)) from exc
        self._cleanup_old_backups(path)

    def _cleanup_old_backups(self, path: Path) -> None:
        prefix = f"{path.name}.bak_"
        try:
            entries = list(path.parent.iterdir())
        except OSError:
            entries = []
        backups = [entry for entry in entries if entry.name.startswith(prefix)]

        def mtime(entry: Path) -> float:
            try:
                return entry.stat().st_mtime
            except OSError:
                return 0.0

        backups.sort(key=mtime, reverse=True)
        for old in backups[self._file_config.max_backups :]:
            try:
                old.unlink()
            except OSError:
                pass