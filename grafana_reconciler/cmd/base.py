"""
Base class for all grafana_reconciler commands. Each command owns one
subparser of the main entrypoint and the function that runs it.
"""

# Standard
from typing import Optional
import abc
import argparse


class CmdBase(abc.ABC):
    __doc__ = __doc__

    # The name of the subcommand on the command line
    name: str = ""

    @abc.abstractmethod
    def add_subparser(
        self,
        subparsers: argparse._SubParsersAction,
    ) -> argparse.ArgumentParser:
        """Add this command's subparser to the main parser

        Args:
            subparsers (argparse._SubParsersAction): The subparser section for
                the central main parser

        Returns:
            subparser (argparse.ArgumentParser): The configured parser for this
                command
        """

    @abc.abstractmethod
    def cmd(self, args: argparse.Namespace) -> Optional[int]:
        """Run the command. A non-zero return value becomes the exit code."""
