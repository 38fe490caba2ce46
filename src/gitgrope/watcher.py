"""
Repository watcher.

One `poll()` call is one watch cycle for one repository:

    query latest release -> skip drafts/prereleases -> consult ledger ->
    download selected assets -> run tasks in order -> record marker

Every failure is logged and reported through the returned CycleResult; only
cancellation propagates to the caller.
"""

import asyncio
from typing import List

from gitgrope.constants import (
    OUTCOME_ALREADY_PROCESSED,
    OUTCOME_BUSY,
    OUTCOME_DIRECTORY_FAILED,
    OUTCOME_DOWNLOAD_FAILED,
    OUTCOME_QUERY_FAILED,
    OUTCOME_RECORD_FAILED,
    OUTCOME_RECORDED,
    OUTCOME_SKIPPED_PRERELEASE,
    OUTCOME_TASK_FAILED,
)
from gitgrope.exceptions import APIError, FetchError, LedgerError
from gitgrope.log_utils import logger

from .config import Repository
from .fetcher import fetch_asset
from .ledger import ReleaseLedger
from .models import CycleResult, Release
from .selector import select
from .tasks import run_task


class RepositoryWatcher:
    """
    Drives release processing for a single repository.

    A watcher holds an in-process lock for its repository. A cycle that
    starts while the previous one is still running is rejected with the
    ``busy`` outcome, so overlapping poll ticks never download into the same
    release directory concurrently. The marker file remains the durable
    record across restarts.
    """

    def __init__(self, repository: Repository):
        if repository.release_dir is None or repository.client is None:
            raise ValueError(
                f"{repository.name}: configuration must be applied before watching"
            )
        self.repository = repository
        self.ledger = ReleaseLedger(repository.release_dir)
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def poll(self) -> CycleResult:
        """
        Run one watch cycle.

        Returns:
            CycleResult: What happened, for logging and tick summaries.
        """
        name = self.repository.name
        if self._lock.locked():
            logger.warning(f"{name}: previous cycle still running, skipping this tick")
            return CycleResult(repository=name, outcome=OUTCOME_BUSY)

        async with self._lock:
            return await self._cycle()

    async def _cycle(self) -> CycleResult:
        repository = self.repository
        name = repository.name

        try:
            release = await repository.client.get_latest_release(
                repository.owner, repository.repo
            )
        except APIError as e:
            logger.error(f"{name}: error checking for latest releases: {e}")
            return CycleResult(
                repository=name, outcome=OUTCOME_QUERY_FAILED, error_message=str(e)
            )

        tag = release.tag_name
        result = CycleResult(repository=name, outcome=OUTCOME_RECORDED, release_tag=tag)

        if release.prerelease or release.draft:
            logger.info(f"{name}.{tag}: skipped draft/pre-release")
            result.outcome = OUTCOME_SKIPPED_PRERELEASE
            return result

        try:
            if self.ledger.is_processed(tag):
                logger.info(f"{name}.{tag} exists locally")
                result.outcome = OUTCOME_ALREADY_PROCESSED
                return result
            release_dir = self.ledger.prepare(tag)
        except LedgerError as e:
            logger.error(f"{name}.{tag}: {e}")
            result.outcome = OUTCOME_DIRECTORY_FAILED
            result.error_message = str(e)
            return result

        logger.info(f"{name}.{tag}: not found locally.")

        if repository.grope_everything:
            logger.info(f"{name}.{tag}: will grope everything")
        assets = select(
            release.assets,
            repository.patterns,
            repository.grope_everything,
            dedupe=repository.dedupe_assets,
        )

        logger.info(f"{name}.{tag}: groping {len(assets)} assets...")
        for asset in assets:
            destination = release_dir / asset.name
            logger.info(f"{name}.{tag}: groping {asset.name} to {destination}")
            try:
                await fetch_asset(repository, asset, destination)
            except FetchError as e:
                logger.error(str(e))
                result.failed_assets.append(asset.name)
            else:
                result.downloaded_assets.append(asset.name)

        if result.failed_assets:
            result.outcome = OUTCOME_DOWNLOAD_FAILED
            result.error_message = (
                f"{len(result.failed_assets)} of {len(assets)} assets failed"
            )
            return result

        if not await self._run_tasks(release, result, [a.name for a in assets]):
            return result

        logger.info(f"{name}.{tag}: save release info")
        try:
            self.ledger.record(tag)
        except LedgerError as e:
            logger.error(f"{name}.{tag}: {e}")
            result.outcome = OUTCOME_RECORD_FAILED
            result.error_message = str(e)
        return result

    async def _run_tasks(
        self, release: Release, result: CycleResult, asset_names: List[str]
    ) -> bool:
        repository = self.repository
        logger.info(f"{repository.name}.{release.tag_name}: running tasks")
        release_dir = self.ledger.release_path(release.tag_name)
        for task in repository.tasks:
            if not await run_task(task, repository, release, release_dir, asset_names):
                result.outcome = OUTCOME_TASK_FAILED
                result.failed_task = task.name
                result.error_message = f"task {task.name} failed"
                return False
        return True
