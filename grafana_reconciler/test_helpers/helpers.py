"""
This module holds common helper functions for making testing easy
"""

# Standard
from contextlib import contextmanager
from unittest import mock
import copy
import inspect
import os

# First Party
import alog

# Local
from grafana_reconciler import constants
from grafana_reconciler.cmd.reconcile_cmd import ReconcileCmd
from grafana_reconciler.config import library_config as config_detail_dict
from grafana_reconciler.deploy_manager.dry_run_deploy_manager import (
    DryRunDeployManager,
)
from grafana_reconciler.model import ResourceIdentity
from grafana_reconciler.utils import merge_configs

log = alog.use_channel("TEST")


def configure_logging():
    alog.configure(
        os.environ.get("LOG_LEVEL", "off"),
        os.environ.get("LOG_FILTERS", ""),
        formatter="json"
        if os.environ.get("LOG_JSON", "").lower() == "true"
        else "pretty",
        thread_id=os.environ.get("LOG_THREAD_ID", "").lower() == "true",
    )


configure_logging()

TEST_INSTANCE_NAME = "grafana"
TEST_INSTANCE_UID = "12345678-1234-1234-1234-123456789012"
TEST_NAMESPACE = "test"
SOME_OTHER_NAMESPACE = "somewhere"

TEST_IDENTITY = ResourceIdentity(namespace=TEST_NAMESPACE, name=TEST_INSTANCE_NAME)


def setup_cr(
    spec=None,
    status=None,
    name=TEST_INSTANCE_NAME,
    namespace=TEST_NAMESPACE,
    kind="Grafana",
    api_version="integreatly.org/v1alpha1",
    **kwargs,
):
    """Build a Grafana CR manifest. The given spec is merged over an empty
    default spec.
    """
    cr_dict = kwargs or {}
    cr_dict.setdefault("kind", kind)
    cr_dict.setdefault("apiVersion", api_version)
    cr_dict.setdefault("metadata", {}).setdefault("name", name)
    cr_dict["metadata"].setdefault("namespace", namespace)
    cr_dict["metadata"].setdefault("uid", TEST_INSTANCE_UID)
    cr_dict["spec"] = merge_configs(
        cr_dict.get("spec", {}), copy.deepcopy(spec or {})
    )
    if status is not None:
        cr_dict["status"] = copy.deepcopy(status)
    return cr_dict


def setup_service(
    name="grafana-service",
    namespace=TEST_NAMESPACE,
    cluster_ip="172.30.0.10",
):
    return {
        "apiVersion": constants.SERVICE_API_VERSION,
        "kind": constants.SERVICE_KIND,
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "clusterIP": cluster_ip,
            "ports": [{"name": "grafana", "port": 3000}],
        },
    }


def setup_ingress(
    name="grafana-ingress",
    namespace=TEST_NAMESPACE,
    load_balancer=None,
):
    ingress = {
        "apiVersion": constants.INGRESS_API_VERSION,
        "kind": constants.INGRESS_KIND,
        "metadata": {"name": name, "namespace": namespace},
        "spec": {"rules": []},
    }
    if load_balancer is not None:
        ingress["status"] = {"loadBalancer": {"ingress": load_balancer}}
    return ingress


def setup_route(name="grafana-route", namespace=TEST_NAMESPACE, host=""):
    return {
        "apiVersion": constants.ROUTE_API_VERSION,
        "kind": constants.ROUTE_KIND,
        "metadata": {"name": name, "namespace": namespace},
        "spec": {"host": host, "to": {"kind": "Service", "name": "grafana-service"}},
    }


@contextmanager
def library_config(**config_overrides):
    """This context manager sets library config values temporarily and reverts
    them on completion
    """
    # Override the configs and hang onto the old values
    old_vals = {}
    for key, val in config_overrides.items():
        if key in config_detail_dict:
            old_vals[key] = config_detail_dict[key]
        config_detail_dict[key] = val

    # Yield to the context
    try:
        yield
    finally:
        # Revert to the old values
        for key in config_overrides:
            if key in old_vals:
                config_detail_dict[key] = old_vals[key]
            else:
                del config_detail_dict[key]


def get_failable_method(fail_flag, method, failure_return=False):
    log.debug4(
        "Setting up failable mock of [%s] with fail flag: %s", str(method), fail_flag
    )

    def failable_method(*args, **kwargs):
        if isinstance(fail_flag, Exception) or (
            inspect.isclass(fail_flag) and issubclass(fail_flag, Exception)
        ):
            log.debug4("Raising in failable mock")
            raise fail_flag
        if callable(fail_flag):
            log.debug4("Calling callable fail flag")
            res = fail_flag()
            if res is not None:
                return res
        elif fail_flag == "assert":
            raise AssertionError(f"You told me to fail {method}!")
        elif fail_flag:
            log.debug4("Returning %s", failure_return)
            return failure_return
        return method(*args, **kwargs)

    return failable_method


class FailOnce:
    """Helper callable that will fail once on the N'th call"""

    def __init__(self, fail_val, fail_number=1):
        self.call_count = 0
        self.fail_number = fail_number
        self.fail_val = fail_val

    def __call__(self, *_, **__):
        self.call_count += 1
        if self.call_count == self.fail_number:
            log.debug("Failing on call %d with %s", self.call_count, self.fail_val)
            if isinstance(self.fail_val, type) and issubclass(self.fail_val, Exception):
                raise self.fail_val("Raising!")
            return self.fail_val
        return None


class MockDeployManager(DryRunDeployManager):
    """The MockDeployManager wraps a standard DryRunDeployManager and adds
    configuration options to simulate failures in each of its operations.
    Every operation is a mock.Mock so tests can also count calls.
    """

    def __init__(
        self,
        deploy_fail=False,
        deploy_raise=False,
        disable_fail=False,
        disable_raise=False,
        get_state_fail=False,
        get_state_raise=False,
        update_status_fail=False,
        update_status_raise=False,
        record_event_fail=False,
        resources=None,
        resource_dir=None,
        **kwargs,
    ):
        resources = list(resources or [])
        resources += ReconcileCmd._parse_resource_dir(  # pylint: disable=protected-access
            resource_dir
        )
        super().__init__(resources, **kwargs)

        self.deploy_fail = "assert" if deploy_raise else deploy_fail
        self.disable_fail = "assert" if disable_raise else disable_fail
        self.get_state_fail = "assert" if get_state_raise else get_state_fail
        self.update_status_fail = "assert" if update_status_raise else update_status_fail
        self.record_event_fail = record_event_fail

        self.deploy = mock.Mock(
            side_effect=get_failable_method(
                self.deploy_fail, super().deploy, (False, False)
            )
        )
        self.disable = mock.Mock(
            side_effect=get_failable_method(
                self.disable_fail, super().disable, (False, False)
            )
        )
        self.get_object_current_state = mock.Mock(
            side_effect=get_failable_method(
                self.get_state_fail, super().get_object_current_state, (False, None)
            )
        )
        self.update_status = mock.Mock(
            side_effect=get_failable_method(
                self.update_status_fail, super().update_status, False
            )
        )
        self.record_event = mock.Mock(
            side_effect=get_failable_method(
                self.record_event_fail, super().record_event, False
            )
        )

    def get_obj(self, kind, name, namespace=TEST_NAMESPACE, api_version=None):
        return self.get_object_current_state(kind, name, namespace, api_version)[1]

    def has_obj(self, *args, **kwargs):
        return self.get_obj(*args, **kwargs) is not None
