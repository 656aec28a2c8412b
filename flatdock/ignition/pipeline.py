"""Configuration pipeline: render, transpile, and clean up the Ignition file."""

import contextlib
import logging
import os

from flatdock.ignition.render import TemplateContext, render_template, render_with_command
from flatdock.ignition.transpile import DEFAULT_BUTANE, transpile_config

logger = logging.getLogger(__name__)


async def render_config(context: TemplateContext, template_path=None, template_command=None) -> str:
    """Render with *template_command* if given, else with the template file."""
    if template_command:
        return await render_with_command(template_command, context)
    return render_template(template_path, context)


@contextlib.asynccontextmanager
async def prepare_ignition(context: TemplateContext, template_path=None, template_command=None, butane=DEFAULT_BUTANE):
    """Yield the path of a freshly rendered and transpiled Ignition file.

    The file is removed on exit, whether the body succeeded or not. Nothing
    is created if rendering or transpiling fails.
    """
    text = await render_config(context, template_path=template_path, template_command=template_command)
    path = await transpile_config(text, butane=butane)
    logger.info(f"Ignition config written to {path}")
    try:
        yield path
    finally:
        try:
            os.unlink(path)
        except OSError as e:
            logger.error(f"Error removing tempfile {path}: {e}")
