"""
Tests for the OpenshiftDeployManager against a mocked dynamic client
"""

# Standard
from unittest import mock

# Third Party
from kubernetes.client.rest import ApiException
from openshift.dynamic.exceptions import ConflictError as DynamicConflictError
from openshift.dynamic.exceptions import (
    DynamicApiError,
    ForbiddenError,
    NotFoundError,
    ResourceNotFoundError,
)
import kubernetes
import pytest

# Local
from grafana_reconciler.deploy_manager import openshift_deploy_manager
from grafana_reconciler.deploy_manager.openshift_deploy_manager import (
    FIELD_MANAGER,
    OpenshiftDeployManager,
)
from grafana_reconciler.exceptions import ConflictError
from grafana_reconciler.exceptions import ResourceNotFoundError as MissingResourceError
from grafana_reconciler.test_helpers.helpers import (
    TEST_NAMESPACE,
    library_config,
    setup_cr,
    setup_service,
)

## Helpers #####################################################################


def api_error(error_type, status):
    return error_type(ApiException(status=status, reason=error_type.__name__))


def make_dm():
    """Make a deploy manager whose client is a mock. All kinds share the same
    resource handle mock.
    """
    dm = OpenshiftDeployManager()
    dm._client = mock.MagicMock()
    handle = dm._client.resources.get.return_value
    return dm, handle


## Client setup ################################################################


def test_client_out_of_cluster():
    """Make sure the kubeconfig is used when not running in a cluster"""
    incluster_patch = mock.patch(
        "kubernetes.config.load_incluster_config",
        side_effect=kubernetes.config.ConfigException,
    )
    kubeconfig_patch = mock.patch("kubernetes.config.new_client_from_config")
    with incluster_patch, kubeconfig_patch as new_client:
        with mock.patch.object(
            openshift_deploy_manager, "DynamicClient"
        ) as dynamic_client:
            client = OpenshiftDeployManager().client
    dynamic_client.assert_called_once_with(new_client.return_value)
    assert client is dynamic_client.return_value


def test_client_is_lazy_and_cached():
    """Make sure the client is only built once"""
    with mock.patch.object(
        OpenshiftDeployManager, "_setup_client", return_value=mock.MagicMock()
    ) as setup:
        dm = OpenshiftDeployManager()
        assert not setup.called
        assert dm.client is dm.client
        assert setup.call_count == 1


## get_object_current_state ####################################################


def test_get_found():
    """Make sure a found object is returned as a dict"""
    dm, handle = make_dm()
    handle.get.return_value.to_dict.return_value = setup_service()
    success, content = dm.get_object_current_state(
        "Service", "grafana-service", TEST_NAMESPACE, "v1"
    )
    assert success
    assert content == setup_service()
    handle.get.assert_called_once_with(name="grafana-service", namespace=TEST_NAMESPACE)


def test_get_not_found():
    """Make sure a missing object is a successful empty lookup"""
    dm, handle = make_dm()
    handle.get.side_effect = api_error(NotFoundError, 404)
    assert dm.get_object_current_state("Service", "x", TEST_NAMESPACE) == (True, None)


def test_get_forbidden():
    """Make sure a forbidden lookup is a failure"""
    dm, handle = make_dm()
    handle.get.side_effect = api_error(ForbiddenError, 403)
    assert dm.get_object_current_state("Service", "x", TEST_NAMESPACE) == (False, None)


def test_get_unserved_kind():
    """Make sure a kind the cluster does not serve is an empty lookup"""
    dm, _ = make_dm()
    dm._client.resources.get.side_effect = ResourceNotFoundError("no Route")
    assert dm.get_object_current_state("Route", "x", TEST_NAMESPACE) == (True, None)


## deploy ######################################################################


def test_deploy_new_object():
    """Make sure a missing object is applied with our field manager"""
    dm, handle = make_dm()
    handle.get.side_effect = api_error(NotFoundError, 404)
    handle.server_side_apply.return_value.to_dict.return_value = setup_service()
    assert dm.deploy([setup_service()]) == (True, True)
    kwargs = handle.server_side_apply.call_args[1]
    assert kwargs["field_manager"] == FIELD_MANAGER
    assert kwargs["namespace"] == TEST_NAMESPACE


def test_deploy_unchanged_object():
    """Make sure an object matching the cluster is not applied"""
    dm, handle = make_dm()
    current = setup_service()
    current["metadata"]["resourceVersion"] = "12"
    current["status"] = {"loadBalancer": {}}
    handle.get.return_value.to_dict.return_value = current
    assert dm.deploy([setup_service()]) == (True, False)
    assert not handle.server_side_apply.called


def test_deploy_field_manager_conflict_forced():
    """Make sure a field manager conflict is resolved by forcing"""
    dm, handle = make_dm()
    handle.get.side_effect = api_error(NotFoundError, 404)
    applied = mock.MagicMock()
    applied.to_dict.return_value = setup_service()
    handle.server_side_apply.side_effect = [
        api_error(DynamicConflictError, 409),
        applied,
    ]
    assert dm.deploy([setup_service()]) == (True, True)
    assert handle.server_side_apply.call_args[1]["force_conflicts"]


def test_deploy_failure():
    """Make sure an api error fails the deploy"""
    dm, handle = make_dm()
    handle.get.side_effect = api_error(NotFoundError, 404)
    handle.server_side_apply.side_effect = api_error(DynamicApiError, 500)
    assert dm.deploy([setup_service()]) == (False, False)


def test_deploy_does_not_mutate_input():
    """Make sure the caller's manifest is left alone"""
    dm, handle = make_dm()
    handle.get.side_effect = api_error(NotFoundError, 404)
    handle.server_side_apply.return_value.to_dict.return_value = setup_service()
    service = setup_service()
    dm.deploy([service])
    assert service == setup_service()


def test_deploy_empty():
    """Make sure an empty deploy is a no-op"""
    dm, handle = make_dm()
    assert dm.deploy([]) == (True, False)
    assert not handle.server_side_apply.called


## disable #####################################################################


def test_disable():
    """Make sure disable deletes the object"""
    dm, handle = make_dm()
    assert dm.disable([setup_service()]) == (True, True)
    handle.delete.assert_called_once_with(
        name="grafana-service", namespace=TEST_NAMESPACE
    )


def test_disable_not_found():
    """Make sure deleting a missing object is a success without change"""
    dm, handle = make_dm()
    handle.delete.side_effect = api_error(NotFoundError, 404)
    with library_config(deploy_retries=0):
        assert dm.disable([setup_service()]) == (True, False)


## update_status ###############################################################


def test_update_status():
    """Make sure the status subresource is replaced"""
    dm, handle = make_dm()
    cr = setup_cr(status={"message": "success"})
    cr["metadata"]["resourceVersion"] = "7"
    written = setup_cr(status={"message": "success"})
    written["metadata"]["resourceVersion"] = "8"
    handle.status.replace.return_value.to_dict.return_value = written
    assert dm.update_status(cr)
    handle.status.replace.assert_called_once_with(body=cr)
    assert cr["metadata"]["resourceVersion"] == "8"


def test_update_status_conflict():
    """Make sure a 409 becomes a ConflictError"""
    dm, handle = make_dm()
    handle.status.replace.side_effect = api_error(DynamicConflictError, 409)
    with pytest.raises(ConflictError):
        dm.update_status(setup_cr(status={}))


def test_update_status_not_found():
    """Make sure a 404 becomes a ResourceNotFoundError"""
    dm, handle = make_dm()
    handle.status.replace.side_effect = api_error(NotFoundError, 404)
    with pytest.raises(MissingResourceError):
        dm.update_status(setup_cr(status={}))


## record_event ################################################################


def test_record_event():
    """Make sure a core/v1 Event is created against the object"""
    dm, handle = make_dm()
    assert dm.record_event(setup_cr(), "Warning", "ProcessingError", "boom")
    body = handle.create.call_args[1]["body"]
    assert body["kind"] == "Event"
    assert body["type"] == "Warning"
    assert body["reason"] == "ProcessingError"
    assert body["message"] == "boom"
    assert body["involvedObject"]["kind"] == "Grafana"
    assert body["source"]["component"] == "grafana-controller"
    assert handle.create.call_args[1]["namespace"] == TEST_NAMESPACE


def test_record_event_failure():
    """Make sure a failed event create is reported but not raised"""
    dm, handle = make_dm()
    handle.create.side_effect = api_error(DynamicApiError, 500)
    assert not dm.record_event(setup_cr(), "Warning", "ProcessingError", "boom")
