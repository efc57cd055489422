"""
Reconcile a single Grafana CR, repeating as long as the reconciler asks to be
requeued
"""
# Standard
from typing import List, Optional
import argparse
import os
import signal
import threading

# Third Party
import yaml

# First Party
import alog

# Local
from .. import config, constants
from ..controller_config import ControllerConfig
from ..deploy_manager import (
    DeployManagerBase,
    DryRunDeployManager,
    OpenshiftDeployManager,
)
from ..events import ControllerEventBus
from ..exceptions import assert_config
from ..model import ResourceIdentity
from ..reconcile import GrafanaReconciler, ReconciliationResult
from .base import CmdBase

log = alog.use_channel("MAIN")


class ReconcileCmd(CmdBase):
    __doc__ = __doc__

    name = "reconcile"

    ## Interface ##

    def add_subparser(
        self,
        subparsers: argparse._SubParsersAction,
    ) -> argparse.ArgumentParser:
        parser = subparsers.add_parser(self.name, help=__doc__)
        runtime_args = parser.add_argument_group("Runtime Configuration")
        runtime_args.add_argument(
            "--name",
            "-n",
            required=True,
            help="Name of the Grafana CR to reconcile",
        )
        runtime_args.add_argument(
            "--namespace",
            "-s",
            default=constants.DEFAULT_NAMESPACE,
            help="Namespace of the Grafana CR to reconcile",
        )
        runtime_args.add_argument(
            "--resource_dir",
            "-r",
            default=None,
            help="(dry run) Path to a directory of yaml files that should exist in the cluster",
        )
        runtime_args.add_argument(
            "--once",
            action="store_true",
            default=False,
            help="Run a single reconcile instead of following the requeue directive",
        )
        return parser

    def cmd(self, args: argparse.Namespace) -> Optional[int]:
        assert_config(
            args.resource_dir is None
            or (config.dry_run and os.path.isdir(args.resource_dir)),
            "Can only specify --resource_dir with dry run and it must point to a valid directory",
        )

        resources = self._parse_resource_dir(args.resource_dir)
        deploy_manager = self._setup_deploy_manager(resources)

        controller_config = ControllerConfig(
            {constants.CONFIG_OPENSHIFT: config.openshift}
        )
        event_bus = ControllerEventBus()
        reconciler = GrafanaReconciler(
            deploy_manager=deploy_manager,
            controller_config=controller_config,
            event_bus=event_bus,
        )
        identity = ResourceIdentity(namespace=args.namespace, name=args.name)

        # Register the signal handler to stop the loop
        stop_event = threading.Event()

        def do_stop(*_, **__):  # pragma: no cover
            log.info("Stopping")
            stop_event.set()

        previous_handler = signal.signal(signal.SIGINT, do_stop)
        try:
            result = self._run_loop(reconciler, identity, stop_event, args.once)
        finally:
            signal.signal(signal.SIGINT, previous_handler)
        log.info("SHUTTING DOWN")
        if result is not None and result.exception is not None:
            return 1
        return 0

    ## Impl ##

    @staticmethod
    def _run_loop(
        reconciler: GrafanaReconciler,
        identity: ResourceIdentity,
        stop_event: threading.Event,
        once: bool,
    ) -> Optional[ReconciliationResult]:
        """Reconcile until stopped. An error without a requeue directive is
        retried after the default delay.
        """
        result = None
        while not stop_event.is_set():
            result = reconciler.safe_reconcile(identity, cancel_event=stop_event)
            state = reconciler.event_bus.latest
            log.info(
                "Reconciled %s: requeue=%s ready=%s url=%s",
                identity,
                result.requeue,
                state.grafana_ready if state else None,
                state.admin_url if state else None,
            )
            if once or (not result.requeue and result.exception is None):
                break
            delay = result.requeue_params.requeue_after.total_seconds()
            log.debug("Requeue in %ss", delay)
            stop_event.wait(delay)
        return result

    @staticmethod
    def _parse_resource_dir(resource_dir: Optional[str]) -> List[dict]:
        """If given, this will parse all yaml files found in the given directory"""
        all_resources = []
        if resource_dir is not None:
            for fname in sorted(os.listdir(resource_dir)):
                if fname.endswith(".yaml") or fname.endswith(".yml"):
                    resource_path = os.path.join(resource_dir, fname)
                    log.debug3("Reading resource file [%s]", resource_path)
                    with open(resource_path, encoding="utf-8") as handle:
                        all_resources.extend(
                            resource
                            for resource in yaml.safe_load_all(handle)
                            if resource
                        )
        for resource in all_resources:
            resource.setdefault("metadata", {}).setdefault(
                "namespace", constants.DEFAULT_NAMESPACE
            )
        return all_resources

    @staticmethod
    def _setup_deploy_manager(resources: List[dict]) -> DeployManagerBase:
        if config.dry_run:
            log.info("Running DRY RUN")
            return DryRunDeployManager(resources=resources)
        log.info("Running against the cluster")  # pragma: no cover
        return OpenshiftDeployManager()  # pragma: no cover
