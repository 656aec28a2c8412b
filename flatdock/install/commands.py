"""Remote paths and the command list that installs Flatcar from rescue."""

import shlex

INSTALL_SCRIPT_SOURCE = "https://raw.githubusercontent.com/flatcar/init/flatcar-master/bin/flatcar-install"
INSTALL_SCRIPT_TARGET = "/root/flatcar-install"
IGNITION_TARGET = "/root/ignition.json"


def download_script_command(source=INSTALL_SCRIPT_SOURCE, target=INSTALL_SCRIPT_TARGET):
    """Command that fetches flatcar-install on the remote machine itself."""
    return f"curl -fsS -o {shlex.quote(target)} {shlex.quote(source)}"


def build_install_command(version, install_device="", install_args=""):
    """Build the flatcar-install invocation.

    Without an install device, ``-s`` picks the smallest unmounted disk.
    """
    device_arg = f"-d {shlex.quote(install_device)}" if install_device else "-s"
    parts = [INSTALL_SCRIPT_TARGET, "-i", IGNITION_TARGET, "-V", shlex.quote(version), device_arg]
    if install_args:
        parts.append(install_args)
    return " ".join(parts)


def build_install_commands(version, install_device="", install_args=""):
    """Commands run in order on the rescue system; the reboot is separate."""
    return [
        "apt update",
        "apt install -y gawk",
        f"chmod +x {INSTALL_SCRIPT_TARGET}",
        build_install_command(version, install_device, install_args),
    ]
