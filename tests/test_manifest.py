import pytest

from wmgr.manifest import (
    FileCopy,
    FileSymlink,
    Group,
    Manifest,
    ManifestError,
    ManifestRepo,
    dump_manifest,
    filter_by_groups,
    list_groups,
    load_manifest,
    parse_manifest,
    validate_manifest,
)

SAMPLE = """repos:
  - dest: repo1
    url: https://github.com/example/repo1.git
    branch: main
  - dest: repo2
    url: https://github.com/example/repo2.git
    branch: develop
"""


def make_manifest() -> Manifest:
    repo1 = ManifestRepo("https://github.com/example/repo1.git", "repo1")
    repo1.copy = [FileCopy(file="config.yml", dest="shared/config.yml")]
    repo1.symlink = [FileSymlink(source="bin/tool", target="../repo1/bin/tool")]
    repo2 = ManifestRepo("https://github.com/example/repo2.git", "repo2")
    return Manifest(
        repos=[repo1, repo2],
        groups={"core": Group(["repo1"], description="Core repositories")},
        default_branch="main",
    )


def test_parse_sample():
    manifest = parse_manifest(SAMPLE)
    assert [r.dest for r in manifest.repos] == ["repo1", "repo2"]
    assert manifest.repos[1].branch == "develop"
    assert manifest.repos[0].url == "https://github.com/example/repo1.git"
    assert manifest.groups is None


def test_round_trip():
    manifest = make_manifest()
    assert parse_manifest(dump_manifest(manifest)) == manifest


def test_load_from_file(tmp_path):
    path = tmp_path / "manifest.yml"
    path.write_text(SAMPLE, encoding="utf-8")
    assert load_manifest(path) == parse_manifest(SAMPLE)


def test_load_missing_file(tmp_path):
    with pytest.raises(ManifestError):
        load_manifest(tmp_path / "nonexistent.yml")


def test_invalid_yaml():
    with pytest.raises(ManifestError):
        parse_manifest("invalid: yaml: content: [")


def test_missing_url():
    with pytest.raises(ManifestError):
        parse_manifest("repos:\n  - dest: repo1\n")


def test_filter_by_groups():
    filtered = filter_by_groups(make_manifest(), ["core"])
    assert [r.dest for r in filtered.repos] == ["repo1"]
    assert "core" in filtered.groups


def test_filter_unknown_group():
    with pytest.raises(ManifestError):
        filter_by_groups(make_manifest(), ["nope"])


def test_list_groups():
    assert list_groups(make_manifest()) == ["core"]
    assert list_groups(parse_manifest(SAMPLE)) == []


def test_validate_accepts_good_manifest():
    manifest = make_manifest()
    validate_manifest(manifest)
    assert len(manifest.repos) == 2


def test_validate_duplicate_dest():
    manifest = Manifest(
        repos=[
            ManifestRepo("https://github.com/example/a.git", "same"),
            ManifestRepo("https://github.com/example/b.git", "same"),
        ]
    )
    with pytest.raises(ManifestError):
        validate_manifest(manifest)


def test_validate_group_unknown_repo():
    manifest = make_manifest()
    manifest.groups["extra"] = Group(["missing"])
    with pytest.raises(ManifestError):
        validate_manifest(manifest)


def test_validate_empty_url():
    manifest = Manifest(repos=[ManifestRepo("", "repo1")])
    with pytest.raises(ManifestError):
        validate_manifest(manifest)