"""
Tests for the StatusReconciler
"""

# Third Party
import pytest

# Local
from grafana_reconciler.exceptions import (
    ClusterError,
    ConflictError,
    ResourceNotFoundError,
)
from grafana_reconciler.model import GrafanaInstance, StatusPhase
from grafana_reconciler.status import StatusReconciler
from grafana_reconciler.test_helpers.helpers import (
    TEST_INSTANCE_NAME,
    MockDeployManager,
    setup_cr,
)

## Helpers #####################################################################


def fetch_instance(dm):
    return GrafanaInstance(
        dm.get_obj("Grafana", TEST_INSTANCE_NAME, api_version="integreatly.org/v1alpha1")
    )


## Tests #######################################################################


def test_sync_status_writes_difference():
    """Make sure a changed status is written"""
    dm = MockDeployManager(resources=[setup_cr()])
    inst = fetch_instance(dm)
    inst.status.phase = StatusPhase.RECONCILING
    inst.status.message = "success"

    assert StatusReconciler(dm).sync_status(inst)
    assert dm.update_status.call_count == 1
    assert fetch_instance(dm).status == inst.status


def test_sync_status_idempotent():
    """Make sure a second sync with the same status does not write"""
    dm = MockDeployManager(resources=[setup_cr()])
    inst = fetch_instance(dm)
    inst.status.phase = StatusPhase.FAILING
    inst.status.message = "boom"
    reconciler = StatusReconciler(dm)

    assert reconciler.sync_status(inst)
    again = fetch_instance(dm)
    assert not reconciler.sync_status(again)
    assert dm.update_status.call_count == 1


def test_sync_status_carries_new_resource_version():
    """Make sure a second write on the same working copy is not rejected as
    stale after the first one bumped the resourceVersion
    """
    dm = MockDeployManager(resources=[setup_cr()])
    inst = fetch_instance(dm)
    read_version = inst.resource_version
    reconciler = StatusReconciler(dm)

    inst.status.phase = StatusPhase.RECONCILING
    inst.status.message = "success"
    assert reconciler.sync_status(inst)
    assert inst.resource_version != read_version
    assert inst.resource_version == fetch_instance(dm).resource_version

    inst.status.phase = StatusPhase.FAILING
    inst.status.message = "failed to find admin url"
    assert reconciler.sync_status(inst)
    assert fetch_instance(dm).status.message == "failed to find admin url"


def test_sync_status_preserves_previous_service_name():
    """Make sure fields not touched by the reconciler survive the write"""
    dm = MockDeployManager(resources=[setup_cr(status={"previousServiceName": "old"})])
    inst = fetch_instance(dm)
    inst.status.message = "success"
    StatusReconciler(dm).sync_status(inst)
    assert fetch_instance(dm).status.previous_service_name == "old"


def test_sync_status_conflict_swallowed():
    """Make sure a concurrent writer causes a conflict that is swallowed"""
    dm = MockDeployManager(resources=[setup_cr()])
    inst = fetch_instance(dm)

    # Another writer updates the CR after the working copy was read
    other = fetch_instance(dm)
    other.status.message = "from somebody else"
    dm.update_status(other.to_dict())

    inst.status.message = "success"
    assert not StatusReconciler(dm).sync_status(inst)
    assert fetch_instance(dm).status.message == "from somebody else"


def test_sync_status_conflict_from_store():
    """Make sure a ConflictError raised by the store is swallowed"""
    dm = MockDeployManager(
        resources=[setup_cr()], update_status_fail=ConflictError("conflict")
    )
    inst = fetch_instance(dm)
    inst.status.message = "success"
    assert not StatusReconciler(dm).sync_status(inst)


def test_sync_status_other_write_errors_raise():
    """Make sure non-conflict write errors propagate"""
    dm = MockDeployManager(resources=[setup_cr()], update_status_raise=True)
    inst = fetch_instance(dm)
    inst.status.message = "success"
    with pytest.raises(AssertionError):
        StatusReconciler(dm).sync_status(inst)


def test_sync_status_not_found():
    """Make sure a deleted CR is reported as not found"""
    dm = MockDeployManager(resources=[setup_cr()])
    inst = fetch_instance(dm)
    dm.disable([setup_cr()])
    with pytest.raises(ResourceNotFoundError):
        StatusReconciler(dm).sync_status(inst)


def test_sync_status_fetch_failure():
    """Make sure a failed read is a ClusterError"""
    inst = GrafanaInstance(setup_cr())
    failing = MockDeployManager(resources=[setup_cr()], get_state_fail=True)
    with pytest.raises(ClusterError):
        StatusReconciler(failing).sync_status(inst)
