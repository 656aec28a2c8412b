"""Machine resolution: look up a server by name or create it.

Resolving twice against an already configured server issues no mutating
requests; a missing private network is attached in place.
"""

import logging

from flatdock.errors import CloudAPIError, LookupFailed, ResourceNotFound
from flatdock.provisioning.actions import wait_for_action
from flatdock.provisioning.capabilities import MachineProvider
from flatdock.provisioning.types import MachineRecord, MachineSpec

logger = logging.getLogger(__name__)


async def _lookup(kind, name, query):
    """Run a lookup query; a failed query is fatal, absence returns None."""
    try:
        return await query(name)
    except CloudAPIError as e:
        raise LookupFailed(kind, name, e) from e


async def _require(kind, name, query):
    resource = await _lookup(kind, name, query)
    if resource is None:
        raise ResourceNotFound(kind, name)
    return resource


async def resolve_ssh_key(cloud, name):
    """Return the SSHKey registered under *name*."""
    return await _require("ssh key", name, cloud.get_ssh_key)


async def resolve_network(cloud, name):
    """Return the private Network named *name*."""
    return await _require("network", name, cloud.get_network)


async def _ensure_network(cloud, server, spec):
    if server.attached_to(spec.network.id):
        logger.info(f"Network '{spec.network.name}' already attached.")
        return server

    logger.info(f"Attaching server to network '{spec.network.name}'...")
    action = await cloud.attach_to_network(server, spec.network)
    await wait_for_action(cloud, action)
    logger.info(f"Attached server to network '{spec.network.name}'.")
    return await _require("server", server.name, lambda _: cloud.get_server_by_id(server.id))


async def _create_server(cloud, spec):
    logger.info(f"Creating server '{spec.name}'...")
    server_type = await _require("server type", spec.server_type, cloud.get_server_type)
    image = await _require("image", spec.image, cloud.get_image)
    location = await _require("location", spec.location, cloud.get_location)

    result = await cloud.create_server(
        name=spec.name,
        server_type=server_type,
        image=image,
        location=location,
        ssh_keys=[spec.ssh_key],
        networks=[spec.network],
        start_after_create=False,
    )
    await wait_for_action(cloud, result.action)
    for next_action in result.next_actions:
        await wait_for_action(cloud, next_action)

    # The create response is partial; fetch the full record for templating
    server_id = result.server.id
    server = await _lookup("server", spec.name, lambda _: cloud.get_server_by_id(server_id))
    if server is None:
        raise LookupFailed("server", spec.name, f"server {server_id} vanished after creation")
    logger.info(f"Server '{server.name}' created (id {server.id}).")
    return server


async def resolve_machine(cloud: MachineProvider, spec: MachineSpec) -> MachineRecord:
    """Return a server named ``spec.name`` that exists and is attached to ``spec.network``.

    Args:
        cloud: provider with lookup, create, attach and progress capabilities.
        spec: desired server with resolved SSH key and network.

    Raises:
        LookupFailed: a lookup query itself failed.
        ResourceNotFound: server type, image or location doesn't exist.
        OperationFailed: a create or attach action failed.
    """
    server = await _lookup("server", spec.name, cloud.get_server_by_name)
    if server is None:
        return await _create_server(cloud, spec)

    logger.info(f"Server '{spec.name}' (id {server.id}) already exists, checking for necessary changes.")
    return await _ensure_network(cloud, server, spec)
