"""
FlowSync CLI.

Each command group lives in its own module and is attached to the
main Click group through a register function.

Entry point: flowsync.cli:main
"""

from __future__ import annotations

import click
from dotenv import find_dotenv, load_dotenv

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="flowsync")
def main():
    """FlowSync -- git-versioned backups of your Flowise chatflows.

    Variables from a .env file in the current directory are loaded
    before any command runs.
    """
    load_dotenv(find_dotenv(usecwd=True))


from .run import register_run_commands
from .status import register_status_commands
from .config_cmd import register_config_commands

register_run_commands(main)
register_status_commands(main)
register_config_commands(main)
