"""Butane → Ignition transpilation.

Parsing is done locally with PyYAML as a syntax check; the rendered text
itself is handed to the ``butane`` binary. The result is written as compact,
key-sorted JSON so the same input always produces the same file.
"""

import json
import logging
import shlex
import tempfile

import yaml

from flatdock.errors import ConfigConvertFailed, ConfigParseFailed
from flatdock.provisioning.shell import run_shell_cmd

logger = logging.getLogger(__name__)

DEFAULT_BUTANE = "butane"
REQUIRED_KEYS = ("variant", "version")


def parse_config(text) -> dict:
    """Parse rendered Butane YAML.

    Raises:
        ConfigParseFailed: invalid YAML, a non-mapping document, or a missing
            ``variant``/``version`` key.
    """
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigParseFailed(str(e)) from e
    if not isinstance(document, dict):
        raise ConfigParseFailed(f"expected a mapping at the top level, got {type(document).__name__}")
    missing = [key for key in REQUIRED_KEYS if key not in document]
    if missing:
        raise ConfigParseFailed(f"missing required key(s): {', '.join(missing)}")
    return document


async def convert_config(text, butane=DEFAULT_BUTANE) -> dict:
    """Convert rendered Butane text to an Ignition dict.

    *text* is handed to butane exactly as rendered, so scalars keep the
    meaning butane's YAML 1.2 parser gives them.

    *butane* is a command line, e.g. ``butane`` or
    ``podman run --rm -i quay.io/coreos/butane:release``. Warnings from
    butane (zero exit, text on stderr) are logged; they are not fatal.

    Raises:
        ConfigConvertFailed: butane exits non-zero or prints invalid JSON
            or non-UTF-8 output.
    """
    rc, stdout, stderr = await run_shell_cmd(shlex.split(butane), input=text)
    if rc != 0:
        raise ConfigConvertFailed(stderr.strip() or f"{butane} exited with status {rc}")
    for line in stderr.strip().splitlines():
        logger.warning(f"butane: {line}")
    try:
        return json.loads(stdout)
    except json.JSONDecodeError as e:
        raise ConfigConvertFailed(f"{butane} produced invalid JSON: {e}") from e


def serialize_ignition(ignition: dict) -> str:
    return json.dumps(ignition, separators=(",", ":"), sort_keys=True)


def write_ignition(ignition: dict) -> str:
    """Write Ignition JSON to a new temp file and return its path."""
    with tempfile.NamedTemporaryFile(mode="w", prefix="ignition", suffix=".json", delete=False) as f:
        f.write(serialize_ignition(ignition))
    return f.name


async def transpile_config(text, butane=DEFAULT_BUTANE) -> str:
    """Parse, convert and persist a rendered config; returns the file path."""
    parse_config(text)
    ignition = await convert_config(text, butane=butane)
    return write_ignition(ignition)
