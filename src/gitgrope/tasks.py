"""
Task runner.

Runs one configured shell command against a downloaded release. Release
metadata is exported through GITHUB_RELEASE_* environment variables and the
child's output is forwarded line by line into the gitgrope logger.
"""

import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional, Sequence

from gitgrope.constants import (
    ASSET_NAME_SEPARATOR,
    ENV_RELEASE_ASSETS,
    ENV_RELEASE_COMMITSH,
    ENV_RELEASE_REPO,
    ENV_RELEASE_TAG,
    ENV_RELEASE_URL,
)
from gitgrope.log_utils import logger

from .models import Release, TaskSpec

if TYPE_CHECKING:
    from .config import Repository

# StreamReader line limit for child output
_STREAM_LIMIT = 1024 * 1024
_NEW_SESSION = os.name == "posix"


def build_task_environment(
    repository: "Repository", release: Release, asset_names: Sequence[str]
) -> Dict[str, str]:
    """
    Return the environment for a task process.

    The current process environment plus the repository full name, release
    URL, the semicolon-joined asset names, the release tag and the target
    commitish.
    """
    env = dict(os.environ)
    env.update(
        {
            ENV_RELEASE_REPO: repository.name,
            ENV_RELEASE_URL: release.url,
            ENV_RELEASE_ASSETS: ASSET_NAME_SEPARATOR.join(asset_names),
            ENV_RELEASE_TAG: release.tag_name,
            ENV_RELEASE_COMMITSH: release.target_commitish,
        }
    )
    return env


async def _forward_stream(
    stream: Optional[asyncio.StreamReader], level: int, label: str
) -> None:
    if stream is None:
        return
    while True:
        try:
            line = await stream.readline()
        except ValueError:
            # Line longer than the reader limit; forward what is buffered
            line = await stream.read(_STREAM_LIMIT)
        if not line:
            break
        text = line.decode(errors="replace").rstrip("\r\n")
        logger.log(level, f"{label}: {text}")


async def _kill(process: asyncio.subprocess.Process) -> None:
    # POSIX tasks lead their own process group; grandchildren share the pipes
    if process.returncode is None:
        try:
            if _NEW_SESSION:
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


async def run_task(
    task: TaskSpec,
    repository: "Repository",
    release: Release,
    working_dir: Path,
    asset_names: Sequence[str],
) -> bool:
    """
    Execute a task for a release and report whether it succeeded.

    The task's command is run as ``{shell} {switch} {command}`` inside
    `working_dir`. Standard output is logged at INFO and standard error at
    ERROR. When the task has a timeout and it expires, the child is killed.
    If the calling cycle is cancelled, the child is killed before the
    cancellation propagates.

    Parameters:
        task (TaskSpec): The task to run.
        repository (Repository): Repository the release belongs to.
        release (Release): The release being processed.
        working_dir (Path): The release's local directory.
        asset_names (Sequence[str]): Names of the downloaded assets.

    Returns:
        bool: True iff the process exited with status zero.
    """
    label = f"{repository.name}.{release.tag_name}.{task.name}"
    env = build_task_environment(repository, release, asset_names)

    logger.info(f"{label}: running task")
    try:
        process = await asyncio.create_subprocess_exec(
            task.shell,
            task.shell_switch,
            task.run,
            cwd=str(working_dir),
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=_STREAM_LIMIT,
            start_new_session=_NEW_SESSION,
        )
    except OSError as e:
        logger.error(f"{label}: task process not successful: {e}")
        return False

    async def _complete() -> int:
        await asyncio.gather(
            _forward_stream(process.stdout, logging.INFO, label),
            _forward_stream(process.stderr, logging.ERROR, label),
        )
        return await process.wait()

    try:
        returncode = await asyncio.wait_for(_complete(), timeout=task.timeout)
    except asyncio.TimeoutError:
        await _kill(process)
        logger.error(f"{label}: task process timed out after {task.timeout}s")
        return False
    except asyncio.CancelledError:
        await _kill(process)
        raise

    if returncode != 0:
        logger.error(f"{label}: task process exited with {returncode}")
        return False
    return True
