"""
Configuration loading for gitgrope.

The configuration is a YAML document read once at startup. Unknown keys are
rejected, every glob is compiled up front, and `Config.apply()` resolves the
per-repository inheritance of access tokens and storage directories before
any polling starts.
"""

import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from gitgrope.constants import (
    APP_DIR_NAME,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_MAX_CONCURRENT_REPOS,
    DEFAULT_POLL_SECONDS,
    DEFAULT_SHUTDOWN_GRACE_SECONDS,
    LOG_FORMAT_JSON,
    LOG_FORMATS,
    POSIX_SHELL,
    POSIX_SHELL_SWITCH,
    WINDOWS_SHELL,
    WINDOWS_SHELL_SWITCH,
)
from gitgrope.exceptions import (
    ConfigFileError,
    ConfigurationError,
    ConfigValidationError,
)
from gitgrope.log_utils import logger

from .github import AsyncGitHubClient
from .models import TaskSpec
from .selector import AssetPattern, compile_patterns

TOP_LEVEL_KEYS = frozenset(
    {
        "poll_seconds",
        "http_timeout",
        "access_token",
        "release_dir",
        "log_file",
        "log_level",
        "log_format",
        "task_shell",
        "task_timeout",
        "fire_once",
        "max_concurrent_repos",
        "shutdown_grace",
        "repos",
    }
)
REPOSITORY_KEYS = frozenset(
    {
        "name",
        "access_token",
        "release_dir",
        "assets",
        "grope_everything",
        "dedupe_assets",
        "tasks",
    }
)
TASK_KEYS = frozenset({"name", "run", "timeout"})


def default_shell() -> str:
    return WINDOWS_SHELL if platform.system() == "Windows" else POSIX_SHELL


def default_shell_switch() -> str:
    if platform.system() == "Windows":
        return WINDOWS_SHELL_SWITCH
    return POSIX_SHELL_SWITCH


@dataclass
class Repository:
    """One watched repository and everything needed to process its releases."""

    name: str
    owner: str
    repo: str
    patterns: List[AssetPattern] = field(default_factory=list)
    grope_everything: bool = False
    dedupe_assets: bool = False
    tasks: List[TaskSpec] = field(default_factory=list)
    access_token: Optional[str] = None
    release_dir: Optional[Path] = None
    client: Optional[AsyncGitHubClient] = None


@dataclass
class Config:
    """Validated top-level configuration."""

    repositories: List[Repository]
    poll_seconds: int = DEFAULT_POLL_SECONDS
    http_timeout: int = DEFAULT_HTTP_TIMEOUT
    access_token: Optional[str] = None
    release_dir: Optional[Path] = None
    log_file: Optional[Path] = None
    log_level: Optional[str] = None
    log_format: str = LOG_FORMAT_JSON
    task_shell: str = field(default_factory=default_shell)
    task_timeout: Optional[int] = None
    fire_once: bool = False
    max_concurrent_repos: int = DEFAULT_MAX_CONCURRENT_REPOS
    shutdown_grace: int = DEFAULT_SHUTDOWN_GRACE_SECONDS
    clients: Dict[Optional[str], AsyncGitHubClient] = field(default_factory=dict)

    def _client_for(self, token: Optional[str]) -> AsyncGitHubClient:
        client = self.clients.get(token)
        if client is None:
            client = AsyncGitHubClient(token=token, timeout=self.http_timeout)
            self.clients[token] = client
        return client

    def apply(self) -> None:
        """
        Resolve defaults and prepare every repository for polling.

        - The storage root defaults to ``~/gitgrope``.
        - Repositories without their own token share the root client; a
          repository with its own token gets a dedicated client.
        - Repositories without their own storage directory use
          ``{root}/{owner}/{repo}``.
        - Each repository's storage directory is created.

        Raises:
            ConfigurationError: If a storage directory cannot be created.
        """
        if self.release_dir is None:
            self.release_dir = Path(os.path.expanduser(f"~/{APP_DIR_NAME}"))

        for repository in self.repositories:
            if repository.access_token is None:
                repository.access_token = self.access_token
            repository.client = self._client_for(repository.access_token)

            if repository.release_dir is None:
                repository.release_dir = (
                    self.release_dir / repository.owner / repository.repo
                )
            try:
                repository.release_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ConfigurationError(
                    f"failed to create release directory for repo {repository.name}",
                    details=str(e),
                ) from e
            logger.debug(
                "%s: releases stored in %s", repository.name, repository.release_dir
            )

    async def close(self) -> None:
        """Close every GitHub client created by apply()."""
        for client in self.clients.values():
            await client.close()


def _check_keys(mapping: Mapping[str, Any], allowed: frozenset, where: str) -> None:
    unknown = sorted(str(key) for key in mapping if key not in allowed)
    if unknown:
        raise ConfigValidationError(
            f"{where}: unknown field(s): {', '.join(unknown)}"
        )


def _get_str(
    mapping: Mapping[str, Any], key: str, where: str, required: bool = False
) -> Optional[str]:
    value = mapping.get(key)
    if value is None or value == "":
        if required:
            raise ConfigValidationError(f"{where}: missing required field '{key}'")
        return None
    if not isinstance(value, str):
        raise ConfigValidationError(f"{where}: '{key}' must be a string")
    return value


def _get_bool(mapping: Mapping[str, Any], key: str, where: str) -> bool:
    value = mapping.get(key, False)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ConfigValidationError(f"{where}: '{key}' must be true or false")
    return value


def _get_int(
    mapping: Mapping[str, Any],
    key: str,
    where: str,
    default: Optional[int],
    minimum: int = 1,
) -> Optional[int]:
    value = mapping.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigValidationError(f"{where}: '{key}' must be an integer (seconds)")
    if value < minimum:
        raise ConfigValidationError(f"{where}: '{key}' must be >= {minimum}")
    return value


def _get_path(mapping: Mapping[str, Any], key: str, where: str) -> Optional[Path]:
    value = _get_str(mapping, key, where)
    return Path(os.path.expanduser(value)) if value else None


def _get_log_format(mapping: Mapping[str, Any], where: str) -> str:
    value = _get_str(mapping, "log_format", where) or LOG_FORMAT_JSON
    if value not in LOG_FORMATS:
        raise ConfigValidationError(
            f"{where}: 'log_format' must be one of: {', '.join(LOG_FORMATS)}"
        )
    return value


def _get_list(mapping: Mapping[str, Any], key: str, where: str) -> List[Any]:
    value = mapping.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigValidationError(f"{where}: '{key}' must be a list")
    return value


def _parse_task(
    data: Any,
    where: str,
    shell: str,
    shell_switch: str,
    default_timeout: Optional[int],
) -> TaskSpec:
    if not isinstance(data, dict):
        raise ConfigValidationError(f"{where}: task must be a mapping")
    _check_keys(data, TASK_KEYS, where)
    run = _get_str(data, "run", where, required=True)
    return TaskSpec(
        name=_get_str(data, "name", where) or run,
        run=run,
        shell=shell,
        shell_switch=shell_switch,
        timeout=_get_int(data, "timeout", where, default_timeout),
    )


def _parse_repository(
    data: Any, index: int, shell: str, default_timeout: Optional[int]
) -> Repository:
    where = f"repos[{index}]"
    if not isinstance(data, dict):
        raise ConfigValidationError(f"{where}: repository entry must be a mapping")
    _check_keys(data, REPOSITORY_KEYS, where)

    name = _get_str(data, "name", where, required=True)
    where = name
    parts = name.split("/")
    if len(parts) != 2 or not all(parts):
        raise ConfigValidationError(
            f"invalid repository name: {name}. must be {{OWNER}}/{{REPO}}"
        )

    raw_patterns = _get_list(data, "assets", where)
    grope_everything = _get_bool(data, "grope_everything", where)
    if not raw_patterns and not grope_everything:
        raise ConfigValidationError(
            f"{name}: missing assets. set `grope_everything: true` to grope all assets"
        )
    if raw_patterns and grope_everything:
        logger.warning(f"{name}: grope_everything is set, asset patterns are ignored")

    switch = default_shell_switch()
    tasks = [
        _parse_task(task, f"{name}.tasks[{i}]", shell, switch, default_timeout)
        for i, task in enumerate(_get_list(data, "tasks", where))
    ]

    return Repository(
        name=name,
        owner=parts[0],
        repo=parts[1],
        patterns=compile_patterns(raw_patterns),
        grope_everything=grope_everything,
        dedupe_assets=_get_bool(data, "dedupe_assets", where),
        tasks=tasks,
        access_token=_get_str(data, "access_token", where),
        release_dir=_get_path(data, "release_dir", where),
    )


def parse_config(data: Any) -> Config:
    """
    Validate a decoded configuration document and build a Config.

    Parameters:
        data (Any): The object produced by ``yaml.safe_load``.

    Returns:
        Config: Validated configuration; call `apply()` before polling.

    Raises:
        ConfigurationError: If the document violates the schema, a repository
            name is malformed, an asset rule is missing or a glob is invalid.
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigValidationError("configuration document must be a mapping")
    _check_keys(data, TOP_LEVEL_KEYS, "config")

    where = "config"
    shell = _get_str(data, "task_shell", where) or default_shell()
    task_timeout = _get_int(data, "task_timeout", where, None)

    repositories = [
        _parse_repository(entry, i, shell, task_timeout)
        for i, entry in enumerate(_get_list(data, "repos", where))
    ]
    if not repositories:
        raise ConfigValidationError("no repositories to grope")

    names = [repository.name for repository in repositories]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ConfigValidationError(
            f"duplicate repository entries: {', '.join(duplicates)}"
        )

    return Config(
        repositories=repositories,
        poll_seconds=_get_int(data, "poll_seconds", where, DEFAULT_POLL_SECONDS),
        http_timeout=_get_int(data, "http_timeout", where, DEFAULT_HTTP_TIMEOUT),
        access_token=_get_str(data, "access_token", where),
        release_dir=_get_path(data, "release_dir", where),
        log_file=_get_path(data, "log_file", where),
        log_level=_get_str(data, "log_level", where),
        log_format=_get_log_format(data, where),
        task_shell=shell,
        task_timeout=task_timeout,
        fire_once=_get_bool(data, "fire_once", where),
        max_concurrent_repos=_get_int(
            data, "max_concurrent_repos", where, DEFAULT_MAX_CONCURRENT_REPOS
        ),
        shutdown_grace=_get_int(
            data, "shutdown_grace", where, DEFAULT_SHUTDOWN_GRACE_SECONDS, minimum=0
        ),
    )


def load_config(config_file: str) -> Config:
    """
    Read, decode and validate the configuration file.

    Parameters:
        config_file (str): Path to the YAML configuration file.

    Returns:
        Config: Validated configuration (not yet applied).

    Raises:
        ConfigFileError: If the file cannot be read or is not valid YAML.
        ConfigurationError: If the document fails validation.
    """
    try:
        with open(os.path.expanduser(config_file), "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigFileError(
            f"cannot read configuration file {config_file}", details=str(e)
        ) from e
    except yaml.YAMLError as e:
        raise ConfigFileError(
            f"invalid YAML in configuration file {config_file}", details=str(e)
        ) from e

    return parse_config(data)
