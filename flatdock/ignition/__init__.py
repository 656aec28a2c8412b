"""Ignition config pipeline: render a Butane template and transpile it."""

from flatdock.ignition.pipeline import prepare_ignition, render_config
from flatdock.ignition.render import TemplateContext, render_template, render_with_command
from flatdock.ignition.transpile import convert_config, parse_config, transpile_config, write_ignition

__all__ = [
    "TemplateContext",
    "render_template",
    "render_with_command",
    "render_config",
    "parse_config",
    "convert_config",
    "write_ignition",
    "transpile_config",
    "prepare_ignition",
]
