#!/usr/bin/env python3
"""Flatcar on Hetzner Cloud: CLI entrypoint."""

import argparse
import asyncio
import logging
import sys

from flatdock.config import DEFAULT_CONFIG_PATH, load_config
from flatdock.errors import FlatdockError
from flatdock.install.orchestrate import install
from flatdock.logging_setup import setup_cli_logging

logger = logging.getLogger(__name__)


def handle_install(args):
    """Load config, run the install, print the summary. Exits 1 on any fatal error."""
    try:
        config = load_config(args.config)
        server = asyncio.run(install(config, args.server_name))
    except FlatdockError as e:
        step = f" [{e.step}]" if e.step else ""
        logger.error(f"Error{step}: {e}")
        sys.exit(1)

    logger.info("------")
    logger.info(
        f"successfully (re)installed {server.name}, ID: {server.id} "
        f"IPv4: {server.public_ipv4} IPv6: {server.public_ipv6}"
    )


def main():
    parser = argparse.ArgumentParser(
        prog="flatdock",
        description="Install Flatcar Container Linux on a Hetzner Cloud server via the rescue system",
    )
    parser.add_argument("server_name", help="Name of the server to create or reinstall")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help=f"Path to config file (default: {DEFAULT_CONFIG_PATH})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    setup_cli_logging(verbose=args.verbose)
    handle_install(args)


if __name__ == "__main__":
    main()
