"""Render the Butane config template for a specific server.

Two renderers: a Jinja2 template file (default), or an external command that
reads the server data as YAML on stdin and prints the config on stdout.
"""

import logging
import os
import shlex
from dataclasses import asdict, dataclass, field

import jinja2
import yaml

from flatdock.errors import TemplateRenderFailed
from flatdock.provisioning.shell import run_shell_cmd
from flatdock.provisioning.types import MachineRecord, SSHKey

logger = logging.getLogger(__name__)


@dataclass
class TemplateContext:
    """Data available to the template."""

    server: MachineRecord
    ssh_key: SSHKey
    static: dict[str, str] = field(default_factory=dict)


def _read_file(path):
    with open(os.path.expanduser(path), encoding="utf-8") as f:
        return f.read()


def render_template(template_path, context: TemplateContext) -> str:
    """Render a Jinja2 template file with *context*.

    Undefined variables are errors, and the output is built in memory, so a
    failed render never yields a partially filled document.

    Template variables: ``server``, ``ssh_key``, ``static`` and the
    ``read_file(path)`` helper.

    Raises:
        TemplateRenderFailed: missing template, syntax error, undefined
            field, or an unreadable file passed to read_file.
    """
    template_path = os.path.expanduser(template_path)
    logger.info(f"Rendering ignition config using template at {template_path}")
    env = jinja2.Environment(
        loader=jinja2.FileSystemLoader(os.path.dirname(os.path.abspath(template_path))),
        undefined=jinja2.StrictUndefined,
        keep_trailing_newline=True,
        autoescape=False,
    )
    env.globals["read_file"] = _read_file
    try:
        template = env.get_template(os.path.basename(template_path))
        return template.render(server=context.server, ssh_key=context.ssh_key, static=context.static)
    except jinja2.TemplateNotFound as e:
        raise TemplateRenderFailed(f"template not found: {e}") from e
    except jinja2.TemplateSyntaxError as e:
        raise TemplateRenderFailed(f"template syntax error in {e.filename}:{e.lineno}: {e.message}") from e
    except jinja2.UndefinedError as e:
        raise TemplateRenderFailed(f"error rendering template {template_path}: {e.message}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise TemplateRenderFailed(f"error reading file while rendering template: {e}") from e


def template_data_yaml(context: TemplateContext) -> str:
    """Serialize the server data handed to an external template command."""
    data = {
        "hetzner": {
            "server": asdict(context.server),
            "ssh_key": asdict(context.ssh_key),
        }
    }
    return yaml.safe_dump(data, sort_keys=False)


async def render_with_command(command, context: TemplateContext) -> str:
    """Render by running *command* with the server name as its last argument.

    Raises:
        TemplateRenderFailed: the command is missing or exits non-zero.
    """
    logger.info(f"Rendering ignition config using command '{command}'")
    args = shlex.split(command) + [context.server.name]
    rc, stdout, stderr = await run_shell_cmd(args, input=template_data_yaml(context))
    if rc != 0:
        raise TemplateRenderFailed(f"template command '{command}' exited with status {rc}:\n{stderr.strip()}")
    return stdout
