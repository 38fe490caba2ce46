"""
Constants and configuration values for gitgrope.

This module contains all hardcoded values, URLs, timeouts, and other constants
used throughout the application.
"""

# GitHub API
GITHUB_API_BASE = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
GITHUB_JSON_MEDIA_TYPE = "application/vnd.github+json"
GITHUB_ASSET_MEDIA_TYPE = "application/octet-stream"
RATE_LIMIT_WARNING_THRESHOLD = 10

# Network timeouts and transfer settings (in seconds / bytes)
DEFAULT_HTTP_TIMEOUT = 30
DEFAULT_CHUNK_SIZE = 8192
BYTES_PER_MEGABYTE = 1024 * 1024
FILE_SIZE_MB_LOGGING_THRESHOLD = 1.0

# Polling and scheduling
DEFAULT_POLL_SECONDS = 60
DEFAULT_MAX_CONCURRENT_REPOS = 4
DEFAULT_SHUTDOWN_GRACE_SECONDS = 5

# Release storage
APP_DIR_NAME = "gitgrope"
RELEASE_MARKER_SUFFIX = ".release"
ASSET_NAME_SEPARATOR = ";"

# Task execution
POSIX_SHELL = "/bin/sh"
POSIX_SHELL_SWITCH = "-c"
WINDOWS_SHELL = "cmd.exe"
WINDOWS_SHELL_SWITCH = "/c"

# Environment variables exported to task processes
ENV_RELEASE_REPO = "GITHUB_RELEASE_REPO"
ENV_RELEASE_URL = "GITHUB_RELEASE_URL"
ENV_RELEASE_ASSETS = "GITHUB_RELEASE_ASSETS"
ENV_RELEASE_TAG = "GITHUB_RELEASE_TAG"
ENV_RELEASE_COMMITSH = "GITHUB_RELEASE_COMMITSH"

# Configuration file
DEFAULT_CONFIG_FILE = ".grope.yaml"

# Cycle outcomes reported by the repository watcher
OUTCOME_QUERY_FAILED = "query_failed"
OUTCOME_SKIPPED_PRERELEASE = "skipped_prerelease"
OUTCOME_ALREADY_PROCESSED = "already_processed"
OUTCOME_BUSY = "busy"
OUTCOME_DIRECTORY_FAILED = "directory_failed"
OUTCOME_DOWNLOAD_FAILED = "download_failed"
OUTCOME_TASK_FAILED = "task_failed"
OUTCOME_RECORD_FAILED = "record_failed"
OUTCOME_RECORDED = "recorded"
OUTCOME_ERROR = "error"

FAILURE_OUTCOMES = frozenset(
    {
        OUTCOME_QUERY_FAILED,
        OUTCOME_DIRECTORY_FAILED,
        OUTCOME_DOWNLOAD_FAILED,
        OUTCOME_TASK_FAILED,
        OUTCOME_RECORD_FAILED,
        OUTCOME_ERROR,
    }
)

# Logging configuration
LOGGER_NAME = "gitgrope"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
INFO_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s: %(message)s"
LOG_FORMAT_JSON = "json"
LOG_FORMAT_TEXT = "text"
LOG_FORMATS = (LOG_FORMAT_JSON, LOG_FORMAT_TEXT)
LOG_FILE_MAX_BYTES = 50 * 1024 * 1024  # 50 MB
LOG_FILE_BACKUP_COUNT = 5

# Environment variable names
LOG_LEVEL_ENV_VAR = "GITGROPE_LOG_LEVEL"
