"""Wait for asynchronous cloud actions to finish."""

import logging

from flatdock.errors import OperationFailed
from flatdock.provisioning.capabilities import WatchProgress
from flatdock.provisioning.types import Action

logger = logging.getLogger(__name__)


async def wait_for_action(cloud: WatchProgress, action: Action) -> None:
    """Block until *action* reaches a terminal state.

    Progress 100 on the progress feed means success. If the feed closes
    before that, the cause is read from the error feed.

    Raises:
        OperationFailed: the action finished in an error state.
    """
    logger.info(f"Waiting for action {action.command} to complete...")
    watch = cloud.watch_progress(action)
    success = False
    async for progress in watch.progress:
        logger.debug(f"action {action.command} ({action.id}): {progress}%")
        if progress == 100:
            success = True
    if success:
        return
    cause = await watch.error
    raise OperationFailed(action.command, cause or "progress feed closed before completion")
