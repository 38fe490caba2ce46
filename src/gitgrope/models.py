"""
Core data structures for the gitgrope release-processing engine.

This module defines the release snapshot fetched from GitHub, its assets,
the configured task specification and the structured result of one
repository watch cycle.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from gitgrope.constants import OUTCOME_RECORDED
from gitgrope.log_utils import logger


@dataclass(frozen=True)
class Asset:
    """Represents a downloadable binary attached to a release."""

    id: int
    """Remote identifier used to address the asset through the API"""

    name: str
    """The filename of the asset"""

    size: int = 0
    """File size in bytes as reported by the API"""

    url: Optional[str] = None
    """API URL of the asset"""

    browser_download_url: Optional[str] = None
    """Public download URL (informational only)"""

    content_type: Optional[str] = None
    """MIME type of the asset"""


@dataclass(frozen=True)
class Release:
    """An immutable snapshot of a published release fetched at poll time."""

    tag_name: str
    """The release tag (e.g., 'v1.0.0')"""

    name: Optional[str] = None
    """Human readable release title"""

    draft: bool = False
    """Whether the release is an unpublished draft"""

    prerelease: bool = False
    """Whether the release is flagged as a prerelease"""

    target_commitish: str = ""
    """Branch or commit the release tag was created from"""

    url: str = ""
    """API URL of the release"""

    html_url: Optional[str] = None
    """Web URL of the release"""

    published_at: Optional[str] = None
    """ISO 8601 timestamp when the release was published"""

    assets: List[Asset] = field(default_factory=list)
    """Downloadable assets in the order the API returned them"""


@dataclass(frozen=True)
class TaskSpec:
    """A named shell command run against every newly downloaded release."""

    name: str
    run: str
    shell: str
    shell_switch: str
    timeout: Optional[float] = None


@dataclass
class CycleResult:
    """Result of one watch cycle for a single repository."""

    repository: str
    """Full ``owner/repo`` name"""

    outcome: str
    """One of the OUTCOME_* constants"""

    release_tag: Optional[str] = None
    """Tag of the latest release, when the query succeeded"""

    downloaded_assets: List[str] = field(default_factory=list)
    """Names of assets written to disk during this cycle"""

    failed_assets: List[str] = field(default_factory=list)
    """Names of assets whose download failed"""

    failed_task: Optional[str] = None
    """Name of the task that stopped the task sequence"""

    error_message: Optional[str] = None
    """Short description of the failure, if any"""

    @property
    def success(self) -> bool:
        return self.outcome == OUTCOME_RECORDED


def parse_asset(data: Any) -> Optional[Asset]:
    """
    Build an Asset from one entry of a release's ``assets`` array.

    Returns None (after logging a warning) for entries that are not objects or
    that lack a usable id or name.
    """
    if not isinstance(data, dict):
        logger.warning(
            "Skipping malformed asset entry: expected dict, got %s",
            type(data).__name__,
        )
        return None

    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        logger.warning("Skipping asset with missing or invalid name")
        return None

    asset_id = data.get("id")
    if isinstance(asset_id, bool) or not isinstance(asset_id, int):
        logger.warning("Skipping asset %s with missing or invalid id", name)
        return None

    try:
        size = int(data.get("size") or 0)
    except (TypeError, ValueError):
        logger.warning("Using size=0 for asset %s due to invalid size value", name)
        size = 0

    return Asset(
        id=asset_id,
        name=name,
        size=size,
        url=data.get("url"),
        browser_download_url=data.get("browser_download_url"),
        content_type=data.get("content_type"),
    )


def parse_release(data: Dict[str, Any]) -> Release:
    """
    Create a Release from the GitHub API release payload.

    Parameters:
        data (Dict[str, Any]): Raw release object as returned by the API.

    Returns:
        Release: Parsed release with its valid assets in API order.

    Raises:
        ValueError: If the payload is not an object or has no usable tag name.
    """
    if not isinstance(data, dict):
        raise ValueError(f"expected release object, got {type(data).__name__}")

    tag_name = data.get("tag_name")
    if not isinstance(tag_name, str) or not tag_name.strip():
        raise ValueError("release has a missing or empty tag_name")

    raw_assets = data.get("assets") or []
    if not isinstance(raw_assets, list):
        logger.warning(
            "Ignoring assets of release %s due to invalid assets type %s",
            tag_name,
            type(raw_assets).__name__,
        )
        raw_assets = []

    assets = [asset for asset in map(parse_asset, raw_assets) if asset is not None]

    return Release(
        tag_name=tag_name.strip(),
        name=data.get("name"),
        draft=bool(data.get("draft", False)),
        prerelease=bool(data.get("prerelease", False)),
        target_commitish=data.get("target_commitish") or "",
        url=data.get("url") or "",
        html_url=data.get("html_url"),
        published_at=data.get("published_at"),
        assets=assets,
    )
