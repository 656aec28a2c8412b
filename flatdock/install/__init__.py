"""Flatcar installation: remote command list and orchestration."""

from flatdock.install.commands import build_install_command, build_install_commands
from flatdock.install.orchestrate import install, install_flatcar, run_install

__all__ = [
    "build_install_command",
    "build_install_commands",
    "install",
    "install_flatcar",
    "run_install",
]
