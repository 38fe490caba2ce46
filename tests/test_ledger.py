"""
Tests for the filesystem release ledger.
"""

import sys
from unittest.mock import patch

import pytest

from gitgrope.exceptions import LedgerError
from gitgrope.ledger import ReleaseLedger

pytestmark = [pytest.mark.unit]


@pytest.fixture
def ledger(release_dir):
    return ReleaseLedger(release_dir)


def test_marker_path_sits_beside_release_directory(ledger, release_dir):
    assert ledger.marker_path("v1.0.0") == release_dir / "v1.0.0.release"
    assert ledger.release_path("v1.0.0") == release_dir / "v1.0.0"


def test_unprocessed_tag(ledger):
    assert ledger.is_processed("v1.0.0") is False


def test_record_creates_empty_marker(ledger, release_dir):
    path = ledger.record("v1.0.0")

    assert path == release_dir / "v1.0.0.release"
    assert path.exists()
    assert path.stat().st_size == 0
    assert ledger.is_processed("v1.0.0") is True


def test_record_existing_marker_is_left_alone(ledger):
    ledger.record("v1.0.0")

    with patch("gitgrope.ledger.logger") as mock_logger:
        ledger.record("v1.0.0")

    mock_logger.warning.assert_called_once()
    assert ledger.is_processed("v1.0.0") is True


def test_record_failure_raises_ledger_error(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    ledger = ReleaseLedger(blocker)

    with pytest.raises(LedgerError) as exc_info:
        ledger.record("v1.0.0")

    assert exc_info.value.path == str(blocker / "v1.0.0.release")


def test_prepare_creates_release_directory(ledger, release_dir):
    path = ledger.prepare("v1.0.0")

    assert path == release_dir / "v1.0.0"
    assert path.is_dir()
    # Creating it again is a no-op
    assert ledger.prepare("v1.0.0") == path


def test_prepare_does_not_mark_processed(ledger):
    ledger.prepare("v1.0.0")

    assert ledger.is_processed("v1.0.0") is False


def test_prepare_failure_raises_ledger_error(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    ledger = ReleaseLedger(blocker)

    with pytest.raises(LedgerError):
        ledger.prepare("v1.0.0")


@pytest.mark.parametrize(
    "tag",
    ["", ".", "..", "/abs", "bad\x00tag", "../escape", "cli/../../x", "a//b", "cli/"],
)
def test_unsafe_tags_rejected(ledger, tag):
    with pytest.raises(LedgerError):
        ledger.marker_path(tag)
    with pytest.raises(LedgerError):
        ledger.release_path(tag)


def test_tag_with_slash_is_nested(ledger, release_dir):
    assert ledger.release_path("cli/v1.0.0") == release_dir / "cli" / "v1.0.0"
    assert ledger.marker_path("cli/v1.0.0") == release_dir / "cli" / "v1.0.0.release"


def test_record_tag_with_slash_creates_parent(ledger, release_dir):
    path = ledger.record("cli/v1.0.0")

    assert path == release_dir / "cli" / "v1.0.0.release"
    assert path.exists()
    assert ledger.is_processed("cli/v1.0.0") is True
    assert ledger.is_processed("v1.0.0") is False


@pytest.mark.skipif(sys.platform == "win32", reason="symlinks need privileges")
def test_tag_through_symlink_outside_release_dir_rejected(
    ledger, release_dir, tmp_path
):
    outside = tmp_path / "outside"
    outside.mkdir()
    (release_dir / "link").symlink_to(outside, target_is_directory=True)

    with pytest.raises(LedgerError, match="unsafe release tag"):
        ledger.prepare("link/v1.0.0")
    assert list(outside.iterdir()) == []
