"""
Tests for the GrafanaPlanner
"""

# Local
from grafana_reconciler import constants
from grafana_reconciler.actions import CreateOrUpdateAction, DeleteAction, LogAction
from grafana_reconciler.cluster_state import ClusterState
from grafana_reconciler.controller_config import ControllerConfig
from grafana_reconciler.model import GrafanaInstance
from grafana_reconciler.planner import GrafanaPlanner
from grafana_reconciler.test_helpers.helpers import (
    TEST_NAMESPACE,
    library_config,
    setup_cr,
    setup_ingress,
    setup_route,
    setup_service,
)

## Helpers #####################################################################


def make_instance(**spec):
    return GrafanaInstance(setup_cr(spec=spec))


def openshift_planner():
    return GrafanaPlanner(ControllerConfig({constants.CONFIG_OPENSHIFT: True}))


## Service #####################################################################


def test_plan_creates_service_first():
    """Make sure a missing service is created and comes first"""
    actions = GrafanaPlanner().plan(
        ClusterState(), make_instance(ingress={"enabled": True})
    )
    assert isinstance(actions[0], CreateOrUpdateAction)
    assert actions[0].message == "create grafana service"
    service = actions[0].resource
    assert service["kind"] == "Service"
    assert service["metadata"]["namespace"] == TEST_NAMESPACE
    assert service["spec"]["ports"][0]["port"] == 3000


def test_plan_updates_service_keeps_cluster_ip():
    """Make sure an existing service keeps its assigned cluster ip"""
    actions = GrafanaPlanner().plan(
        ClusterState(grafana_service=setup_service(cluster_ip="172.30.1.1")),
        make_instance(service={"name": "grafana-service"}),
    )
    assert actions[0].message == "update grafana service"
    assert actions[0].resource["spec"]["clusterIP"] == "172.30.1.1"


def test_plan_service_port_and_name():
    """Make sure the service is named and ported per the CR"""
    actions = GrafanaPlanner().plan(
        ClusterState(),
        make_instance(
            service={"name": "custom"}, config={"server": {"http_port": "8080"}}
        ),
    )
    assert actions[0].resource["metadata"]["name"] == "custom"
    assert actions[0].resource["spec"]["ports"][0]["port"] == 8080


## Ingress #####################################################################


def test_plan_ingress_enabled():
    """Make sure an ingress pointing at the service is planned"""
    actions = GrafanaPlanner().plan(
        ClusterState(),
        make_instance(ingress={"enabled": True, "hostname": "grafana.example.com"}),
    )
    assert [action.message for action in actions] == [
        "create grafana service",
        "create grafana ingress",
    ]
    rule = actions[1].resource["spec"]["rules"][0]
    assert rule["host"] == "grafana.example.com"
    backend = rule["http"]["paths"][0]["backend"]["service"]
    assert backend == {"name": "grafana-service", "port": {"number": 3000}}


def test_plan_ingress_update():
    """Make sure an existing ingress is updated without a host if none is set"""
    actions = GrafanaPlanner().plan(
        ClusterState(grafana_ingress=setup_ingress()),
        make_instance(ingress={"enabled": True}),
    )
    assert actions[1].message == "update grafana ingress"
    assert "host" not in actions[1].resource["spec"]["rules"][0]


def test_plan_ingress_disabled_deletes_stale():
    """Make sure a stale ingress is deleted when ingress is disabled"""
    actions = GrafanaPlanner().plan(
        ClusterState(grafana_ingress=setup_ingress()), make_instance()
    )
    assert isinstance(actions[1], DeleteAction)
    assert actions[1].message == "delete grafana ingress"


def test_plan_ingress_disabled_nothing_to_do():
    """Make sure only the service is planned with ingress disabled"""
    actions = GrafanaPlanner().plan(ClusterState(), make_instance())
    assert len(actions) == 1


## Route #######################################################################


def test_plan_route_create():
    """Make sure openshift mode plans a route instead of an ingress"""
    actions = openshift_planner().plan(
        ClusterState(), make_instance(ingress={"enabled": True})
    )
    assert [action.message for action in actions] == [
        "create grafana service",
        "create grafana route",
    ]
    route = actions[1].resource
    assert route["kind"] == "Route"
    assert route["spec"]["to"]["name"] == "grafana-service"
    assert route["spec"]["tls"]["termination"] == "edge"


def test_plan_route_update_keeps_host():
    """Make sure the host assigned by the router is kept"""
    actions = openshift_planner().plan(
        ClusterState(grafana_route=setup_route(host="grafana.apps.example.com")),
        make_instance(ingress={"enabled": True}),
    )
    assert isinstance(actions[1], LogAction)
    assert actions[2].message == "update grafana route"
    assert actions[2].resource["spec"]["host"] == "grafana.apps.example.com"


def test_plan_route_disabled_deletes_stale():
    """Make sure a stale route is deleted when ingress is disabled"""
    actions = openshift_planner().plan(
        ClusterState(grafana_route=setup_route()), make_instance()
    )
    assert isinstance(actions[1], DeleteAction)


def test_plan_openshift_from_library_config():
    """Make sure the library config selects the platform when the controller
    config does not
    """
    with library_config(openshift=True):
        actions = GrafanaPlanner().plan(
            ClusterState(), make_instance(ingress={"enabled": True})
        )
    assert actions[1].resource["kind"] == "Route"
