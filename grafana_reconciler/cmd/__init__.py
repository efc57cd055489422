"""
This module holds all of the command classes for grafana_reconciler's main
entrypoint
"""

# Local
from .base import CmdBase
from .reconcile_cmd import ReconcileCmd
