"""
The ClusterState is the snapshot of the grafana instance's child resources as
they currently exist in the cluster. It is rebuilt from scratch on every
reconcile and never outlives it.
"""

# Standard
from dataclasses import dataclass
from typing import Optional

# First Party
import alog

# Local
from . import config, constants
from .deploy_manager import DeployManagerBase
from .exceptions import assert_cluster
from .model import GrafanaInstance

log = alog.use_channel("STATE")


@dataclass
class ClusterState:
    """Observed child resources of one Grafana CR. Any of them may be absent."""

    grafana_service: Optional[dict] = None
    grafana_ingress: Optional[dict] = None
    grafana_route: Optional[dict] = None


class ClusterStateReader:
    """Reads the ClusterState for an instance through a DeployManager"""

    def __init__(self, deploy_manager: DeployManagerBase):
        self.deploy_manager = deploy_manager

    def read(self, instance: GrafanaInstance) -> ClusterState:
        """Read all child resources. Every networking path is looked up
        regardless of platform so that a stale ingress or route is still seen.

        Raises:
            ClusterError: any lookup failed
        """
        state = ClusterState(
            grafana_service=self._read(
                instance,
                constants.SERVICE_KIND,
                constants.SERVICE_API_VERSION,
                instance.service_name,
            ),
            grafana_ingress=self._read(
                instance,
                constants.INGRESS_KIND,
                constants.INGRESS_API_VERSION,
                config.default_ingress_name,
            ),
            grafana_route=self._read(
                instance,
                constants.ROUTE_KIND,
                constants.ROUTE_API_VERSION,
                config.default_route_name,
            ),
        )
        log.debug2(
            "Read state for %s: service=%s ingress=%s route=%s",
            instance.identity,
            state.grafana_service is not None,
            state.grafana_ingress is not None,
            state.grafana_route is not None,
        )
        return state

    def _read(
        self, instance: GrafanaInstance, kind: str, api_version: str, name: str
    ) -> Optional[dict]:
        success, content = self.deploy_manager.get_object_current_state(
            kind=kind,
            name=name,
            namespace=instance.namespace,
            api_version=api_version,
        )
        assert_cluster(
            success, f"Failed to read {kind} {instance.namespace}/{name}"
        )
        return content
