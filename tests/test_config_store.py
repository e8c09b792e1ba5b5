from dataclasses import replace
from pathlib import Path

import pytest

from wmgr.config_store import (
    BackupConfig,
    ConfigFileNotFoundError,
    ConfigStore,
    ConfigValidationError,
    InvalidConfigPathError,
    ValidationConfig,
    WorkspaceConfig,
    YamlParsingError,
)


def make_config() -> WorkspaceConfig:
    return WorkspaceConfig(
        manifest_url="git@example.com:example/manifest.git",
        manifest_branch="main",
        repo_groups=["group1"],
        shallow_clones=True,
    )


def strict_store() -> ConfigStore:
    return ConfigStore(
        BackupConfig(),
        ValidationConfig(
            validate_on_read=True, validate_before_write=True, strict_validation=True
        ),
    )


def test_config_store_creation():
    store = ConfigStore()
    assert store.backup_config.create_backup is True
    assert store.validation_config.validate_on_read is True
    assert store.backup_config.max_backups == 5
    assert store.backup_config.backup_suffix == ".bak"
    assert store.validation_config.strict_validation is False


def test_write_and_read_workspace_config(tmp_path):
    path = tmp_path / "config.yml"
    store = ConfigStore()
    original = make_config()
    store.write_workspace_config(path, original)
    assert path.exists()
    read = store.read_workspace_config(path)
    assert read.manifest_url == original.manifest_url
    assert read.manifest_branch == original.manifest_branch
    assert read.shallow_clones == original.shallow_clones
    assert read == original


def test_singular_remote_omitted_when_unset(tmp_path):
    path = tmp_path / "config.yml"
    ConfigStore().write_workspace_config(path, make_config())
    assert "singular_remote" not in path.read_text()


def test_singular_remote_round_trip(tmp_path):
    path = tmp_path / "config.yml"
    store = ConfigStore()
    config = replace(make_config(), singular_remote="upstream")
    store.write_workspace_config(path, config)
    assert store.read_workspace_config(path).singular_remote == "upstream"


def test_read_nonexistent_config(tmp_path):
    with pytest.raises(ConfigFileNotFoundError):
        ConfigStore().read_workspace_config(tmp_path / "nonexistent.yml")


def test_read_missing_required_field(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("manifest_url: https://example.com/m.git\n")
    with pytest.raises(YamlParsingError):
        ConfigStore().read_workspace_config(path)


def test_read_defaults_fill_optional_fields(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text(
        "manifest_url: https://example.com/m.git\nmanifest_branch: main\n"
        "repo_groups: [web]\n"
    )
    config = ConfigStore().read_workspace_config(path)
    assert config.shallow_clones is False
    assert config.clone_all_repos is False
    assert config.singular_remote is None
    assert config.repo_groups == ["web"]


def test_read_validates_on_read(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("manifest_url: https://example.com/m.git\nmanifest_branch: main\n")
    with pytest.raises(ConfigValidationError):
        ConfigStore().read_workspace_config(path)
    lenient = ConfigStore(validation_config=ValidationConfig(validate_on_read=False))
    assert lenient.read_workspace_config(path).repo_groups == []


def test_config_metadata(tmp_path):
    path = tmp_path / "config.yml"
    store = ConfigStore()
    store.write_workspace_config(path, make_config())
    metadata = store.get_config_metadata(path)
    assert metadata.exists
    assert metadata.size > 0
    assert metadata.path == path


def test_config_metadata_missing(tmp_path):
    metadata = ConfigStore().get_config_metadata(tmp_path / "missing.yml")
    assert metadata.exists is False
    assert metadata.size == 0
    assert metadata.last_modified.timestamp() == 0


def test_config_validation(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("invalid: yaml: content: [")
    with pytest.raises(YamlParsingError):
        ConfigStore().validate_yaml_schema(path)


def test_validate_yaml_schema_missing_file(tmp_path):
    with pytest.raises(ConfigFileNotFoundError):
        ConfigStore().validate_yaml_schema(tmp_path / "missing.yml")


def test_backup_functionality(tmp_path):
    path = tmp_path / "config.yml"
    store = ConfigStore()
    config = make_config()
    store.write_workspace_config(path, config)
    assert store.list_backups(path) == []
    store.write_workspace_config(path, replace(config, manifest_branch="develop"))
    backups = store.list_backups(path)
    assert backups
    assert all(b.name.startswith("config.yml.bak_") for b in backups)
    assert "main" in backups[0].read_text()
    assert store.read_workspace_config(path).manifest_branch == "develop"


def test_no_backup_when_disabled(tmp_path):
    path = tmp_path / "config.yml"
    store = ConfigStore(BackupConfig(create_backup=False))
    store.write_workspace_config(path, make_config())
    store.write_workspace_config(path, make_config())
    assert store.list_backups(path) == []


def test_list_backups_invalid_path():
    with pytest.raises(InvalidConfigPathError):
        ConfigStore().list_backups(Path("/"))


def test_delete_config(tmp_path):
    path = tmp_path / "config.yml"
    store = ConfigStore()
    store.write_workspace_config(path, make_config())
    assert store.config_exists(path)
    store.delete_config(path)
    assert not path.exists()
    assert len(store.list_backups(path)) == 1


def test_delete_missing_config_is_quiet(tmp_path):
    store = ConfigStore()
    path = tmp_path / "absent.yml"
    store.delete_config(path)
    assert store.config_exists(path) is False


def test_strict_validation(tmp_path):
    config = replace(make_config(), manifest_url="invalid-url")
    with pytest.raises(ConfigValidationError):
        strict_store().write_workspace_config(tmp_path / "config.yml", config)
    assert not (tmp_path / "config.yml").exists()


@pytest.mark.parametrize(
    "changes",
    [
        {"manifest_branch": "feature/../x"},
        {"manifest_branch": "/main"},
        {"repo_groups": ["  "]},
    ],
)
def test_strict_validation_rejects(changes):
    with pytest.raises(ConfigValidationError):
        strict_store().validate_workspace_config(replace(make_config(), **changes))


def test_strict_validation_accepts_https():
    config = replace(make_config(), manifest_url="https://example.com/manifest.git")
    strict_store().validate_workspace_config(config)
    assert ConfigStore().config_exists(Path("definitely-not-here.yml")) is False


@pytest.mark.parametrize(
    "changes",
    [
        {"manifest_url": ""},
        {"manifest_branch": ""},
        {"manifest_branch": "b" * 256},
        {"repo_groups": []},
        {"singular_remote": ""},
    ],
)
def test_basic_validation_rejects(changes):
    with pytest.raises(ConfigValidationError):
        ConfigStore().validate_workspace_config(replace(make_config(), **changes))


def test_write_and_read_generic_config(tmp_path):
    path = tmp_path / "nested" / "settings.yml"
    store = ConfigStore()
    data = {"name": "workspace", "items": [1, 2, 3], "flag": True}
    store.write_config(path, data)
    assert store.read_config(path) == data


def test_write_config_accepts_dataclass(tmp_path):
    path = tmp_path / "settings.yml"
    store = ConfigStore()
    store.write_config(path, BackupConfig(max_backups=2))
    assert store.read_config(path) == {
        "create_backup": True,
        "max_backups": 2,
        "backup_suffix": ".bak",
    }


def test_read_config_missing(tmp_path):
    with pytest.raises(ConfigFileNotFoundError):
        ConfigStore().read_config(tmp_path / "missing.yml")