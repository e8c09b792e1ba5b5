"""Workspace tooling for groups of git repositories: command execution, configuration and manifest storage."""

__version__ = "0.1.0"
__all__ = ["command_executor", "config_store", "manifest", "manifest_store"]