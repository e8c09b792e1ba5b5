"""Manifest model: the repositories of a workspace, their groups and file operations."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

__all__ = [
    "ManifestError",
    "FileCopy",
    "FileSymlink",
    "Group",
    "ManifestRepo",
    "Manifest",
    "parse_manifest",
    "load_manifest",
    "dump_manifest",
    "validate_manifest",
    "filter_by_groups",
    "list_groups",
]


class ManifestError(Exception):
    """A manifest could not be read, parsed or validated."""


def _require_mapping(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ManifestError(f"{what} must be a mapping")
    return value


def _require_str(data: dict[str, Any], key: str, what: str) -> str:
    if key not in data:
        raise ManifestError(f"{what}: missing field `{key}`")
    value = data[key]
    if not isinstance(value, str):
        raise ManifestError(f"{what}: field `{key}` must be a string")
    return value


def _optional_str(data: dict[str, Any], key: str, what: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ManifestError(f"{what}: field `{key}` must be a string")
    return value


def _optional_list(data: dict[str, Any], key: str, what: str) -> list[Any] | None:
    value = data.get(key)
    if value is not None and not isinstance(value, list):
        raise ManifestError(f"{what}: field `{key}` must be a list")
    return value


@dataclass
class FileCopy:
    """Copy ``file`` from inside a repository to ``dest`` in the workspace."""

    file: str
    dest: str

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file, "dest": self.dest}

    @classmethod
    def from_dict(cls, data: Any) -> FileCopy:
        data = _require_mapping(data, "copy entry")
        return cls(
            file=_require_str(data, "file", "copy entry"),
            dest=_require_str(data, "dest", "copy entry"),
        )


@dataclass
class FileSymlink:
    """Create a link at ``source`` in the workspace pointing to ``target``."""

    source: str
    target: str

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "target": self.target}

    @classmethod
    def from_dict(cls, data: Any) -> FileSymlink:
        data = _require_mapping(data, "symlink entry")
        return cls(
            source=_require_str(data, "source", "symlink entry"),
            target=_require_str(data, "target", "symlink entry"),
        )


@dataclass
class Group:
    """A named set of repositories, listed by destination."""

    repos: list[str] = field(default_factory=list)
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"repos": list(self.repos)}
        if self.description is not None:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: Any, name: str) -> Group:
        what = f"group `{name}`"
        data = _require_mapping(data, what)
        repos = _optional_list(data, "repos", what) or []
        if not all(isinstance(r, str) for r in repos):
            raise ManifestError(f"{what}: repos must be strings")
        return cls(repos=list(repos), description=_optional_str(data, "description", what))


@dataclass
class ManifestRepo:
    """One repository of the manifest."""

    url: str
    dest: str
    branch: str | None = None
    copy: list[FileCopy] | None = None
    symlink: list[FileSymlink] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"dest": self.dest, "url": self.url}
        if self.branch is not None:
            data["branch"] = self.branch
        if self.copy is not None:
            data["copy"] = [c.to_dict() for c in self.copy]
        if self.symlink is not None:
            data["symlink"] = [s.to_dict() for s in self.symlink]
        return data

    @classmethod
    def from_dict(cls, data: Any) -> ManifestRepo:
        data = _require_mapping(data, "repository entry")
        what = f"repository `{data.get('dest', '?')}`"
        copies = _optional_list(data, "copy", what)
        links = _optional_list(data, "symlink", what)
        return cls(
            url=_require_str(data, "url", what),
            dest=_require_str(data, "dest", what),
            branch=_optional_str(data, "branch", what),
            copy=[FileCopy.from_dict(c) for c in copies] if copies is not None else None,
            symlink=[FileSymlink.from_dict(s) for s in links] if links is not None else None,
        )


@dataclass
class Manifest:
    """Repositories of a workspace with optional groups and default branch."""

    repos: list[ManifestRepo] = field(default_factory=list)
    groups: dict[str, Group] | None = None
    default_branch: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"repos": [r.to_dict() for r in self.repos]}
        if self.groups is not None:
            data["groups"] = {name: g.to_dict() for name, g in self.groups.items()}
        if self.default_branch is not None:
            data["default_branch"] = self.default_branch
        return data

    @classmethod
    def from_dict(cls, data: Any) -> Manifest:
        data = _require_mapping(data, "manifest")
        repos = _optional_list(data, "repos", "manifest") or []
        raw_groups = data.get("groups")
        groups: dict[str, Group] | None = None
        if raw_groups is not None:
            raw_groups = _require_mapping(raw_groups, "manifest groups")
            groups = {str(name): Group.from_dict(g, str(name)) for name, g in raw_groups.items()}
        return cls(
            repos=[ManifestRepo.from_dict(r) for r in repos],
            groups=groups,
            default_branch=_optional_str(data, "default_branch", "manifest"),
        )


def parse_manifest(text: str) -> Manifest:
    """Parse a manifest from YAML text."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ManifestError(f"YAML parsing failed: {exc}") from exc
    if data is None:
        data = {}
    return Manifest.from_dict(data)


def load_manifest(path: str | os.PathLike[str]) -> Manifest:
    """Read and parse a manifest file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ManifestError(f"Manifest file not found at path: {path}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestError(f"Manifest file read failed: {exc}") from exc
    return parse_manifest(text)


def dump_manifest(manifest: Manifest) -> str:
    """Serialize a manifest to YAML text."""
    return yaml.safe_dump(manifest.to_dict(), sort_keys=False, allow_unicode=True)


def validate_manifest(manifest: Manifest) -> None:
    """Raise ManifestError if a repository or group entry is inconsistent."""
    seen: set[str] = set()
    for repo in manifest.repos:
        if not repo.dest.strip():
            raise ManifestError("Repository destination cannot be empty")
        if not repo.url.strip():
            raise ManifestError(f"Repository `{repo.dest}` has an empty URL")
        if repo.dest in seen:
            raise ManifestError(f"Duplicate repository destination: {repo.dest}")
        seen.add(repo.dest)
    for name, group in (manifest.groups or {}).items():
        if not name.strip():
            raise ManifestError("Group names cannot be empty")
        unknown = [dest for dest in group.repos if dest not in seen]
        if unknown:
            raise ManifestError(
                f"Group `{name}` refers to unknown repositories: {', '.join(unknown)}"
            )


def filter_by_groups(manifest: Manifest, group_names: list[str]) -> Manifest:
    """Manifest holding only the repositories and groups named."""
    groups = manifest.groups or {}
    missing = [name for name in group_names if name not in groups]
    if missing:
        raise ManifestError(f"Group not found: {', '.join(missing)}")
    wanted = {dest for name in group_names for dest in groups[name].repos}
    return Manifest(
        repos=[repo for repo in manifest.repos if repo.dest in wanted],
        groups={name: groups[name] for name in group_names},
        default_branch=manifest.default_branch,
    )


def list_groups(manifest: Manifest) -> list[str]:
    """Names of the manifest's groups, sorted."""
    return sorted(manifest.groups or {})