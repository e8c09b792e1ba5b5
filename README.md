# wmgr

Building blocks for managing a workspace made of many git repositories:
running commands, storing the workspace configuration, and reading and
applying manifests.

## Installation

```
pip install .
```

Install the test tools with the `test` extra:

```
pip install ".[test]"
```

## Modules

### `wmgr.command_executor`

Runs external programs and captures their output.

- `parse_command(command, use_shell)` splits a command line on whitespace
  into a program and its arguments, or, with `use_shell=True`, wraps it as
  `sh -c <command>` (`cmd /C <command>` on Windows). An empty command raises
  `InvalidCommandError`.
- `execute(command, config)` is a coroutine returning an `ExecutionResult`
  (`exit_code`, `stdout`, `stderr`, `execution_time_ms`, `success`). A
  non-zero exit code is a result, not an error. `ExecutionConfig` sets the
  working directory, extra environment variables, whether the parent
  environment is inherited, whether stdout and stderr are captured, whether a
  shell is used, and `timeout_seconds`; a command that runs past its timeout
  is killed and `CommandTimeoutError` is raised. A program that cannot be
  started raises `SpawnFailedError`.
- `execute_parallel(tasks, parallel_config)` runs a list of `ExecutionTask`
  objects concurrently, at most `ParallelConfig.max_concurrency` at a time
  (the CPU count by default). It returns a `ParallelResult` whose
  `task_results` maps each task id to its `ExecutionResult` or to the
  `CommandExecutorError` it ended in, with `success_count`,
  `failure_count`, `is_success()` and `failed_results()`. With
  `fail_fast=True`, results are recorded only up to the first task that
  ended in an error.
- `command_exists(command)` tells whether a program is on `PATH`;
  `create_config(working_dir, env_vars)` builds an `ExecutionConfig`.

### `wmgr.config_store`

`ConfigStore` reads and writes YAML configuration files.

- `read_workspace_config` / `write_workspace_config` load and save a
  `WorkspaceConfig` (`manifest_url`, `manifest_branch`, `shallow_clones`,
  `repo_groups`, `clone_all_repos`, `singular_remote`).
- `validate_workspace_config` requires a non-empty manifest URL, a branch of
  1 to 255 characters, at least one repository group and, when set, a
  singular remote of 1 to 255 characters. With
  `ValidationConfig(strict_validation=True)` the URL must also start with
  `http` or `git@`, the branch may not contain `..` or start with `/`, and
  group names may not be blank. Failures raise `ConfigValidationError`.
- `read_config` / `write_config` handle any YAML document.
- Before a file is overwritten or deleted, a copy named
  `<name><suffix>_<timestamp>` is made (suffix `.bak` by default) and only the
  newest `max_backups` copies (5 by default) are kept; `list_backups` returns
  them newest first. `BackupConfig(create_backup=False)` turns this off.
- `get_config_metadata`, `config_exists`, `delete_config` and
  `validate_yaml_schema` (a syntax check) complete the set.

### `wmgr.manifest`

The manifest model: `Manifest` holds a list of `ManifestRepo` (`url`,
`dest`, optional `branch`, `copy` and `symlink` lists of `FileCopy` and
`FileSymlink`), optional named `Group`s and an optional `default_branch`.

- `parse_manifest(text)`, `load_manifest(path)` and `dump_manifest(manifest)`
  convert to and from YAML.
- `validate_manifest(manifest)` rejects empty or duplicate destinations,
  empty URLs, blank group names and groups naming unknown repositories.
- `filter_by_groups(manifest, group_names)` keeps only the repositories of the
  named groups; `list_groups(manifest)` returns group names sorted.

All problems raise `ManifestError`.

### `wmgr.manifest_store`

`ManifestStore` keeps manifest files on disk and carries out the file
operations a manifest declares.

- `read_manifest`, `write_manifest`, `delete_manifest`, `manifest_exists` and
  `get_manifest_metadata` (size, modification time, repository and group
  counts). Overwritten or deleted manifests are backed up as
  `<name>.bak_<timestamp>`.
- `process_copy_operations` copies `<root>/<repo dest>/<file>` to
  `<root>/<dest>`; `process_symlink_operations` creates a link at
  `<root>/<source>` pointing to `<target>`; `process_all_file_operations` does
  both, copies first. Each operation yields a `FileOperationResult`; a failed
  operation is reported in its `error` field rather than raised. By default
  existing files are not overwritten (`FileOperationConfig`).
- `validate_copy_paths` and `validate_symlink_paths` reject `..` in paths and
  identical copy source and destination, raising `PathValidationError`.

## Example

```python
import asyncio
from wmgr.command_executor import ExecutionConfig, ExecutionTask, ParallelConfig, execute, execute_parallel

async def main():
    result = await execute("git --version", ExecutionConfig(timeout_seconds=10))
    print(result.exit_code, result.stdout)

    tasks = [ExecutionTask("a", "echo one"), ExecutionTask("b", "echo two")]
    summary = await execute_parallel(tasks, ParallelConfig(max_concurrency=2))
    print(summary.success_count, summary.failure_count)

asyncio.run(main())
```

A manifest:

```yaml
repos:
  - dest: frontend
    url: https://example.com/example/frontend.git
  - dest: backend
    url: https://example.com/example/backend.git
groups:
  web:
    repos: [frontend]
```

```python
from wmgr.manifest import load_manifest, filter_by_groups

manifest = load_manifest("manifest.yml")
web_only = filter_by_groups(manifest, ["web"])
```

## What it does not do

This package is a library only. It has no command-line program, and it does
not clone, fetch or synchronise git repositories itself; to run git, pass git
commands to `execute` or `execute_parallel`. Manifests are read from local
files only, not downloaded.