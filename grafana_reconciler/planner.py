"""
The planner compares the ClusterState with the Grafana CR and produces the
ordered list of actions that closes the gap. The service comes first since
both the ingress and the route point at it.
"""

# Standard
from typing import List, Optional
import abc

# First Party
import alog

# Local
from . import config, constants
from .actions import Action, CreateOrUpdateAction, DeleteAction, LogAction
from .cluster_state import ClusterState
from .controller_config import ControllerConfig
from .model import GrafanaInstance

log = alog.use_channel("PLAN")

# Label put on every child so that they can be selected together
APP_LABEL = "app"
APP_LABEL_VALUE = "grafana"


class PlanGenerator(abc.ABC):
    """Interface for anything that turns a snapshot into a plan"""

    @abc.abstractmethod
    def plan(self, state: ClusterState, instance: GrafanaInstance) -> List[Action]:
        """Compute the ordered actions for this instance"""


class GrafanaPlanner(PlanGenerator):
    """Plans the service and the externally reachable path (an Ingress on
    kubernetes, a Route on openshift) for a grafana instance
    """

    def __init__(self, controller_config: Optional[ControllerConfig] = None):
        self.controller_config = controller_config

    @property
    def openshift(self) -> bool:
        if self.controller_config is not None:
            return self.controller_config.get_config_bool(
                constants.CONFIG_OPENSHIFT, config.openshift
            )
        return config.openshift

    def plan(self, state: ClusterState, instance: GrafanaInstance) -> List[Action]:
        actions = [self._service_action(state, instance)]
        if self.openshift:
            actions.extend(self._route_actions(state, instance))
        else:
            actions.extend(self._ingress_actions(state, instance))
        log.debug2("Planned %d actions for %s", len(actions), instance.identity)
        return actions

    ## Service #################################################################

    def _service_action(self, state: ClusterState, instance: GrafanaInstance) -> Action:
        port = instance.grafana_port
        service = self._child(
            instance,
            constants.SERVICE_KIND,
            constants.SERVICE_API_VERSION,
            instance.service_name,
        )
        service["spec"] = {
            "type": "ClusterIP",
            "selector": {APP_LABEL: APP_LABEL_VALUE},
            "ports": [
                {
                    "name": "grafana",
                    "port": port,
                    "protocol": "TCP",
                    "targetPort": "grafana-http",
                }
            ],
        }
        if state.grafana_service is None:
            return CreateOrUpdateAction(service, "create grafana service")

        # Keep what the api server assigned
        cluster_ip = state.grafana_service.get("spec", {}).get("clusterIP")
        if cluster_ip:
            service["spec"]["clusterIP"] = cluster_ip
        return CreateOrUpdateAction(service, "update grafana service")

    ## Ingress #################################################################

    def _ingress_actions(
        self, state: ClusterState, instance: GrafanaInstance
    ) -> List[Action]:
        if not instance.ingress_enabled:
            if state.grafana_ingress is not None:
                return [DeleteAction(state.grafana_ingress, "delete grafana ingress")]
            return []

        ingress = self._child(
            instance,
            constants.INGRESS_KIND,
            constants.INGRESS_API_VERSION,
            config.default_ingress_name,
        )
        rule = {
            "http": {
                "paths": [
                    {
                        "path": "/",
                        "pathType": "Prefix",
                        "backend": {
                            "service": {
                                "name": instance.service_name,
                                "port": {"number": instance.grafana_port},
                            }
                        },
                    }
                ]
            }
        }
        if instance.ingress_hostname:
            rule["host"] = instance.ingress_hostname
        ingress["spec"] = {"rules": [rule]}

        verb = "create" if state.grafana_ingress is None else "update"
        return [CreateOrUpdateAction(ingress, f"{verb} grafana ingress")]

    ## Route ###################################################################

    def _route_actions(
        self, state: ClusterState, instance: GrafanaInstance
    ) -> List[Action]:
        if not instance.ingress_enabled:
            if state.grafana_route is not None:
                return [DeleteAction(state.grafana_route, "delete grafana route")]
            return []

        route = self._child(
            instance,
            constants.ROUTE_KIND,
            constants.ROUTE_API_VERSION,
            config.default_route_name,
        )
        route["spec"] = {
            "to": {"kind": constants.SERVICE_KIND, "name": instance.service_name},
            "port": {"targetPort": "grafana"},
            "tls": {"termination": "edge"},
        }
        if instance.ingress_hostname:
            route["spec"]["host"] = instance.ingress_hostname

        if state.grafana_route is None:
            return [CreateOrUpdateAction(route, "create grafana route")]

        # An empty host is filled in by the router; keep it stable
        current_host = state.grafana_route.get("spec", {}).get("host")
        if not instance.ingress_hostname and current_host:
            route["spec"]["host"] = current_host
        return [
            LogAction(f"grafana route host is {current_host or '<pending>'}"),
            CreateOrUpdateAction(route, "update grafana route"),
        ]

    ## Implementation Details ##################################################

    @staticmethod
    def _child(
        instance: GrafanaInstance, kind: str, api_version: str, name: str
    ) -> dict:
        return {
            "apiVersion": api_version,
            "kind": kind,
            "metadata": {
                "name": name,
                "namespace": instance.namespace,
                "labels": {APP_LABEL: APP_LABEL_VALUE},
            },
        }
