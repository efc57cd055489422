"""
The GrafanaReconciler is the top-level reconcile loop for a Grafana CR. One
call to reconcile() runs a full cycle for one CR:

    1. Fetch the CR. If it is gone, clean up the shared controller config and
       tell the sibling controllers that grafana is not ready.
    2. Read the current children into a ClusterState
    3. Plan and apply the actions that move the children to the desired state
    4. Run the optional discovery hook
    5. Write the status and publish the controller state

Every failure after the initial fetch is reported on the CR status and as a
Warning event, and the CR is requeued after a fixed delay. Each cycle that
gets past the initial fetch publishes exactly one ControllerState.
"""

# Standard
from dataclasses import dataclass, field
from typing import Callable, Optional
import datetime
import threading

# First Party
import alog

# Local
from . import config, constants
from .actions import ActionRunner
from .admin_url import resolve_admin_url
from .cluster_state import ClusterState, ClusterStateReader
from .controller_config import ControllerConfig
from .deploy_manager import DeployManagerBase
from .events import ControllerEventBus, ControllerState
from .exceptions import (
    ClusterError,
    ReconcileCancelledError,
    ResourceNotFoundError,
)
from .model import GrafanaInstance, ResourceIdentity, StatusPhase
from .planner import GrafanaPlanner, PlanGenerator
from .status import StatusReconciler

log = alog.use_channel("RECON")


@dataclass
class RequeueParams:
    """RequeueParams holds parameters for requeue request"""

    requeue_after: datetime.timedelta = field(
        default_factory=lambda: datetime.timedelta(
            seconds=float(config.requeue_delay_seconds)
        )
    )


@dataclass
class ReconciliationResult:
    """ReconciliationResult is the result of a reconciliation cycle"""

    # Flag to control requeue of current reconcile request
    requeue: bool
    # Parameters for requeue request
    requeue_params: RequeueParams = field(default_factory=RequeueParams)
    # Flag to identify if the reconciliation raised an exception
    exception: Exception = None


# Signature of the discovery hook run after the actions are applied
DISCOVERY_TYPE = Callable[[GrafanaInstance, ControllerConfig], None]


class GrafanaReconciler:
    """Reconciles Grafana CRs through a DeployManager. The reconciler holds no
    per-cycle state, so a single instance can serve any number of CRs
    concurrently as long as the caller serializes cycles of the same CR.
    """

    def __init__(
        self,
        deploy_manager: DeployManagerBase,
        controller_config: ControllerConfig,
        event_bus: ControllerEventBus,
        state_reader: Optional[ClusterStateReader] = None,
        planner: Optional[PlanGenerator] = None,
        discovery: Optional[DISCOVERY_TYPE] = None,
    ):
        """
        Args:
            deploy_manager:  DeployManagerBase
                Handle on the object store
            controller_config:  ControllerConfig
                Configuration shared with the sibling controllers
            event_bus:  ControllerEventBus
                Where the controller state is published at the end of a cycle
            state_reader:  Optional[ClusterStateReader]
                Override for reading the ClusterState
            planner:  Optional[PlanGenerator]
                Override for planning the actions
            discovery:  Optional[DISCOVERY_TYPE]
                Hook that inspects the instance after the actions are applied
                (e.g. to discover installed plugins)
        """
        self.deploy_manager = deploy_manager
        self.controller_config = controller_config
        self.event_bus = event_bus
        self.state_reader = state_reader or ClusterStateReader(deploy_manager)
        self.planner = planner or GrafanaPlanner(controller_config)
        self.discovery = discovery
        self.status_reconciler = StatusReconciler(deploy_manager)

    ## Reconciliation ##########################################################

    @alog.logged_function(log.info)
    @alog.timed_function(log.info, "Reconcile finished in: ")
    def reconcile(
        self,
        identity: ResourceIdentity,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReconciliationResult:
        """Run one reconcile cycle for the CR with the given identity

        Args:
            identity:  ResourceIdentity
                The namespace/name of the Grafana CR
            cancel_event:  Optional[threading.Event]
                If set while the cycle runs, the cycle stops at the next
                checkpoint and takes the error path

        Returns:
            reconcile_result:  ReconciliationResult
                Whether and when to reconcile this CR again

        Raises:
            ClusterError: the CR could not be fetched
        """
        try:
            manifest = self.deploy_manager.fetch_object(
                kind=config.grafana_kind,
                name=identity.name,
                namespace=identity.namespace,
                api_version=config.grafana_api_version,
            )
        except ResourceNotFoundError:
            log.info("Grafana %s not found, cleaning up", identity)
            self.controller_config.remove_config_item(
                constants.CONFIG_DASHBOARD_LABEL_SELECTOR
            )
            self.controller_config.cleanup(True)
            self._publish(ControllerState(grafana_ready=False))
            return ReconciliationResult(requeue=False)

        # Work on a copy so that nothing below mutates the fetched manifest
        instance = GrafanaInstance(manifest).deep_copy()

        try:
            self._check_cancelled(cancel_event)
            state = self.state_reader.read(instance)

            actions = self.planner.plan(state, instance)
            log.debug("Running %d actions for %s", len(actions), identity)
            runner = ActionRunner(self.deploy_manager, owner_cr=instance.to_dict())
            runner.run_all(actions, cancel_event=cancel_event)

            if self.discovery is not None:
                self._check_cancelled(cancel_event)
                self.discovery(instance, self.controller_config)
        except Exception as err:  # pylint: disable=broad-except
            return self._manage_error(instance, err)

        return self._manage_success(instance, state, cancel_event)

    def safe_reconcile(
        self,
        identity: ResourceIdentity,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReconciliationResult:
        """Call reconcile but never raise. Errors that escape reconcile are
        returned without a requeue so the caller applies its default backoff.
        """
        try:
            return self.reconcile(identity, cancel_event)
        except Exception as exc:  # pylint: disable=broad-except
            log.warning("Handling caught error in reconcile: %s", exc, exc_info=True)
            return ReconciliationResult(requeue=False, exception=exc)

    ## Implementation Details ##################################################

    def _manage_error(
        self, instance: GrafanaInstance, error: Exception
    ) -> ReconciliationResult:
        """Report the error on the CR and requeue. Errors reading the CR back
        for the status write reach the caller. A failed write of the failing
        status is logged and the error is still published.
        """
        log.warning("Reconcile of %s failed: %s", instance.identity, error)
        log.debug("Reconcile error details", exc_info=True)
        self.deploy_manager.record_event(
            instance.to_dict(),
            constants.EVENT_TYPE_WARNING,
            constants.PROCESSING_ERROR_REASON,
            str(error),
        )

        instance.status.phase = StatusPhase.FAILING
        instance.status.message = str(error)
        try:
            self.status_reconciler.sync_status(instance)
        except (ClusterError, ResourceNotFoundError):
            raise
        except Exception as write_err:  # pylint: disable=broad-except
            log.warning(
                "Failed to write failing status of %s: %s",
                instance.identity,
                write_err,
            )

        self.controller_config.invalidate_dashboards()
        self._publish(ControllerState(grafana_ready=False))
        return ReconciliationResult(
            requeue=True, requeue_params=RequeueParams(), exception=error
        )

    def _manage_success(
        self,
        instance: GrafanaInstance,
        state: ClusterState,
        cancel_event: Optional[threading.Event],
    ) -> ReconciliationResult:
        instance.status.phase = StatusPhase.RECONCILING
        instance.status.message = constants.SUCCESS_MESSAGE

        if self.controller_config.get_config_bool(
            constants.CONFIG_GRAFANA_DASHBOARDS_SYNCED
        ):
            instance.status.installed_dashboards = (
                self.controller_config.dashboards or []
            )
        elif self.controller_config.dashboards is None:
            self.controller_config.set_dashboards([])

        try:
            self._check_cancelled(cancel_event)
            self.status_reconciler.sync_status(instance)

            self._check_cancelled(cancel_event)
            admin_url = resolve_admin_url(instance, state)
        except Exception as err:  # pylint: disable=broad-except
            return self._manage_error(instance, err)

        self._publish(
            ControllerState(
                grafana_ready=True,
                dashboard_selectors=tuple(instance.dashboard_label_selectors),
                dashboard_namespace_selector=instance.dashboard_namespace_selector,
                admin_url=admin_url,
                client_timeout=instance.client_timeout,
            )
        )
        log.info("Reconciled %s, admin url is %s", instance.identity, admin_url)
        return ReconciliationResult(requeue=True, requeue_params=RequeueParams())

    def _publish(self, state: ControllerState):
        log.debug2("Publishing controller state: %s", state)
        self.event_bus.publish(state)

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]):
        if cancel_event is not None and cancel_event.is_set():
            raise ReconcileCancelledError("Reconcile cancelled")
