"""Narrow cloud capabilities the provisioning steps depend on.

A step only calls the methods of the protocols it needs; HetznerCloud
implements all of them.
"""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol

from flatdock.provisioning.types import (
    Action,
    ActionError,
    MachineRecord,
    NamedResource,
    Network,
    ServerCreateResult,
    SSHKey,
)


@dataclass
class ProgressWatch:
    """Two feeds for one action: progress values, then the error (or None).

    ``progress`` closes when the action reaches a terminal state; ``error`` is
    resolved at the same time.
    """

    progress: AsyncIterator[int]
    error: "asyncio.Future[ActionError | None]"


class Lookup(Protocol):
    async def get_server_by_name(self, name: str) -> MachineRecord | None: ...

    async def get_server_by_id(self, server_id: int) -> MachineRecord | None: ...

    async def get_ssh_key(self, name: str) -> SSHKey | None: ...

    async def get_network(self, name: str) -> Network | None: ...

    async def get_server_type(self, name: str) -> NamedResource | None: ...

    async def get_image(self, id_or_name: str) -> NamedResource | None: ...

    async def get_location(self, name: str) -> NamedResource | None: ...


class Create(Protocol):
    async def create_server(
        self,
        name: str,
        server_type: NamedResource,
        image: NamedResource,
        location: NamedResource,
        ssh_keys: list[SSHKey],
        networks: list[Network],
        start_after_create: bool = False,
    ) -> ServerCreateResult: ...


class Attach(Protocol):
    async def attach_to_network(self, server: MachineRecord, network: Network) -> Action: ...


class EnableRescue(Protocol):
    async def enable_rescue(self, server: MachineRecord, ssh_keys: list[SSHKey], rescue_type: str = "linux64") -> Action: ...


class Reboot(Protocol):
    async def reboot(self, server: MachineRecord) -> Action: ...


class Poweron(Protocol):
    async def poweron(self, server: MachineRecord) -> Action: ...


class WatchProgress(Protocol):
    def watch_progress(self, action: Action) -> ProgressWatch: ...


class MachineProvider(Lookup, Create, Attach, WatchProgress, Protocol):
    """What server resolution needs."""


class RescueProvider(EnableRescue, Reboot, Poweron, WatchProgress, Protocol):
    """What the rescue sequence needs."""
