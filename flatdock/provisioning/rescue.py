"""Boot a server into the Hetzner rescue system."""

import asyncio
import logging

from flatdock.errors import CloudAPIError, OperationFailed, RescueEnableFailed
from flatdock.provisioning.actions import wait_for_action
from flatdock.provisioning.capabilities import RescueProvider

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_DELAY = 30


async def enter_rescue(cloud: RescueProvider, server, ssh_key, settle_delay=DEFAULT_SETTLE_DELAY, sleep=asyncio.sleep):
    """Enable rescue mode if needed, then (re)boot the server into it.

    A running server is rebooted, anything else is powered on. After the
    power action completes there is a fixed settle delay, since the rescue
    system is not reachable the moment the action finishes.

    Raises:
        RescueEnableFailed: the enable-rescue request or its action failed.
        OperationFailed: the reboot/poweron action failed.
    """
    if not server.rescue_enabled:
        logger.info("Enabling rescue boot...")
        try:
            action = await cloud.enable_rescue(server, [ssh_key])
            await wait_for_action(cloud, action)
        except (CloudAPIError, OperationFailed) as e:
            raise RescueEnableFailed(f"error enabling rescue on server {server.id}: {e}") from e

    if server.status == "running":
        logger.info("Server already running, rebooting into rescue for reinstall...")
        action = await cloud.reboot(server)
    else:
        logger.info("Powering server on...")
        action = await cloud.poweron(server)
    await wait_for_action(cloud, action)

    logger.info(f"Sleeping {settle_delay}s to wait for server to (re)boot into rescue...")
    await sleep(settle_delay)
