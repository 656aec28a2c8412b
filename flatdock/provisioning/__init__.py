"""Hetzner Cloud provisioning: actions, server resolution, rescue, SSH session."""

from flatdock.provisioning.actions import wait_for_action
from flatdock.provisioning.hcloud import HetznerCloud
from flatdock.provisioning.machine import resolve_machine, resolve_network, resolve_ssh_key
from flatdock.provisioning.rescue import enter_rescue
from flatdock.provisioning.shell import run_shell_cmd
from flatdock.provisioning.ssh_session import (
    RescueSession,
    SSHAuth,
    connect_with_retry,
    load_ssh_auth,
    reboot,
    run_commands,
)
from flatdock.provisioning.types import Action, MachineRecord, MachineSpec, Network, SSHKey

__all__ = [
    "Action",
    "MachineRecord",
    "MachineSpec",
    "Network",
    "SSHKey",
    "HetznerCloud",
    "wait_for_action",
    "resolve_machine",
    "resolve_network",
    "resolve_ssh_key",
    "enter_rescue",
    "run_shell_cmd",
    "RescueSession",
    "SSHAuth",
    "connect_with_retry",
    "load_ssh_auth",
    "run_commands",
    "reboot",
]
