"""Install orchestration: server → ignition → rescue → SSH → flatcar-install → reboot."""

import asyncio
import contextlib
import logging

import paramiko

from flatdock.config import Config, FlatcarConfig
from flatdock.errors import FlatdockError, UploadFailed
from flatdock.ignition.pipeline import prepare_ignition
from flatdock.ignition.render import TemplateContext
from flatdock.install.commands import (
    IGNITION_TARGET,
    INSTALL_SCRIPT_TARGET,
    build_install_commands,
    download_script_command,
)
from flatdock.provisioning.hcloud import HetznerCloud
from flatdock.provisioning.machine import resolve_machine, resolve_network, resolve_ssh_key
from flatdock.provisioning.rescue import enter_rescue
from flatdock.provisioning.ssh_session import (
    RescueSession,
    connect_with_retry,
    load_ssh_auth,
    reboot,
    run_commands,
)
from flatdock.provisioning.types import MachineRecord, MachineSpec

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def _step(name):
    """Tag any FlatdockError raised inside the block with *name*."""
    logger.info(f"==> {name}")
    try:
        yield
    except FlatdockError as e:
        if e.step is None:
            e.step = name
        raise


async def _open_rescue_session(host, auth, host_key_checking=False):
    return await asyncio.to_thread(RescueSession.connect, host, auth, host_key_checking=host_key_checking)


async def install_flatcar(session, ignition_path, flatcar: FlatcarConfig):
    """Place flatcar-install and the Ignition file on the host and run the install."""
    if flatcar.install_script:
        await session.upload(flatcar.install_script, INSTALL_SCRIPT_TARGET)
    else:
        command = download_script_command()
        logger.info("Downloading flatcar-install on the remote machine...")
        try:
            status = await session.run(command)
        except (paramiko.SSHException, OSError, EOFError) as e:
            raise UploadFailed(f"error downloading install script: {e}") from e
        if status != 0:
            raise UploadFailed(f"error downloading install script: '{command}' exited with status {status}")
    await session.upload(ignition_path, IGNITION_TARGET)

    commands = build_install_commands(flatcar.version, flatcar.install_device, flatcar.install_args)
    await run_commands(session, commands)


async def run_install(config: Config, server_name, cloud, open_session=_open_rescue_session, sleep=asyncio.sleep) -> MachineRecord:
    """Shared install orchestration.

    Args:
        config: validated configuration
        server_name: name of the server to (re)install
        cloud: provider implementing all provisioning capabilities
        open_session: async callable(host, auth, host_key_checking) -> session
        sleep: async sleep used for the settle delay and connection retries

    Returns:
        The resolved MachineRecord.

    Raises:
        FlatdockError: with ``step`` set to the failing step.
    """
    hc, rescue, flatcar = config.hcloud, config.rescue, config.flatcar

    with _step("resolve resources"):
        ssh_key = await resolve_ssh_key(cloud, hc.ssh_key)
        network = await resolve_network(cloud, hc.private_network)

    spec = MachineSpec(
        name=server_name,
        server_type=hc.server_type,
        location=hc.location,
        image=hc.image,
        ssh_key=ssh_key,
        network=network,
    )
    with _step("resolve server"):
        server = await resolve_machine(cloud, spec)

    context = TemplateContext(server=server, ssh_key=ssh_key, static=dict(flatcar.template_static))
    async with contextlib.AsyncExitStack() as stack:
        with _step("render ignition"):
            ignition_path = await stack.enter_async_context(
                prepare_ignition(
                    context,
                    template_path=flatcar.config_template,
                    template_command=flatcar.template_command,
                    butane=flatcar.butane,
                )
            )

        with _step("enter rescue"):
            await enter_rescue(cloud, server, ssh_key, settle_delay=rescue.settle_delay, sleep=sleep)

        with _step("connect"):
            auth = load_ssh_auth(hc.ssh_key_private_path)
            host = server.public_ipv4
            session = await connect_with_retry(
                lambda: open_session(host, auth, host_key_checking=rescue.host_key_checking),
                f"root@{host}",
                retries=rescue.connect_retries,
                retry_delay=rescue.connect_retry_delay,
                sleep=sleep,
            )
        stack.callback(session.close)

        with _step("install"):
            await install_flatcar(session, ignition_path, flatcar)

        with _step("reboot"):
            await reboot(session)

    return server


async def install(config: Config, server_name) -> MachineRecord:
    """(Re)install Flatcar on *server_name*. Single entry point."""
    async with HetznerCloud(config.hcloud.token, api_url=config.hcloud.api_url) as cloud:
        return await run_install(config, server_name, cloud)
