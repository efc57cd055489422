"""
Package exports
"""

# Local
from . import config, constants
from .actions import ActionRunner, CreateOrUpdateAction, DeleteAction, LogAction
from .admin_url import resolve_admin_url
from .cluster_state import ClusterState, ClusterStateReader
from .controller_config import ControllerConfig
from .deploy_manager import (
    DeployManagerBase,
    DryRunDeployManager,
    OpenshiftDeployManager,
)
from .events import ControllerEventBus, ControllerState, Subscription
from .exceptions import assert_cluster, assert_config
from .model import (
    GrafanaDashboardRef,
    GrafanaInstance,
    GrafanaStatus,
    ResourceIdentity,
    StatusPhase,
)
from .planner import GrafanaPlanner, PlanGenerator
from .reconcile import GrafanaReconciler, ReconciliationResult, RequeueParams
from .status import StatusReconciler
