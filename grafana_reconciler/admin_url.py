"""
Resolution of the url that the dashboard controller uses to reach the grafana
admin api. The candidates are tried in priority order:

    1. The route (openshift), unless the CR prefers the service
    2. The ingress, unless the CR prefers the service. The hostname override
       on the CR wins, then the first load balancer endpoint. An ingress that
       has not been given an endpoint yet is skipped.
    3. The in-cluster service dns name
"""

# First Party
import alog

# Local
from .cluster_state import ClusterState
from .exceptions import AdminUrlError
from .model import GrafanaInstance
from .utils import nested_get

log = alog.use_channel("ADMURL")


def resolve_admin_url(instance: GrafanaInstance, state: ClusterState) -> str:
    """Find the url of the grafana admin api

    Args:
        instance:  GrafanaInstance
            The CR being reconciled
        state:  ClusterState
            The children observed for the CR

    Returns:
        admin_url:  str
            The url, including the scheme

    Raises:
        AdminUrlError: none of the candidates is usable
    """
    if not instance.prefer_service:
        if state.grafana_route is not None:
            url = f"https://{nested_get(state.grafana_route, 'spec.host', '')}"
            log.debug2("Using route url %s", url)
            return url

        if state.grafana_ingress is not None:
            url = _ingress_url(instance, state.grafana_ingress)
            if url:
                log.debug2("Using ingress url %s", url)
                return url
            log.debug("Ingress has no load balancer endpoint yet")

    if state.grafana_service is not None:
        url = "http://{}.{}.svc.cluster.local:{}".format(
            nested_get(state.grafana_service, "metadata.name") or instance.service_name,
            instance.namespace,
            instance.grafana_port,
        )
        log.debug2("Using service url %s", url)
        return url

    raise AdminUrlError("failed to find admin url")


def _ingress_url(instance: GrafanaInstance, ingress: dict) -> str:
    if instance.ingress_hostname:
        return f"https://{instance.ingress_hostname}"

    endpoints = nested_get(ingress, "status.loadBalancer.ingress") or []
    if not endpoints:
        return ""
    endpoint = endpoints[0] or {}
    if endpoint.get("hostname"):
        return f"https://{endpoint['hostname']}"
    return f"https://{endpoint.get('ip', '')}"
