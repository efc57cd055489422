"""
This DeployManager is responsible for delegating cluster operations to the
openshift library. It is the one that will be used when the reconciler is
running in the cluster or outside the cluster making live changes.
"""
# Standard
from collections import namedtuple
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple
import copy
import threading
import time
import uuid

# Third Party
from openshift.dynamic import DynamicClient
from openshift.dynamic.apply import LAST_APPLIED_CONFIG_ANNOTATION, recursive_diff
from openshift.dynamic.exceptions import ConflictError as DynamicConflictError
from openshift.dynamic.exceptions import (
    DynamicApiError,
    ForbiddenError,
    NotFoundError,
    ResourceNotFoundError,
    ResourceNotUniqueError,
)
from openshift.dynamic.resource import Resource
import kubernetes

# First Party
import alog

# Local
from .. import config, constants
from ..exceptions import ConflictError, ResourceNotFoundError as MissingResourceError
from ..exceptions import assert_cluster
from .base import DeployManagerBase

log = alog.use_channel("OSFTD")

# Field manager used for server side apply
FIELD_MANAGER = "grafana-reconciler"


class OpenshiftDeployManager(DeployManagerBase):
    """This DeployManager uses the openshift DynamicClient to interact with the
    cluster
    """

    def __init__(self):
        # Set up the client lazily
        self._client = None

        # Keep a threading lock for performing status updates so that
        # concurrent threads in this process don't race each other into 409s
        self._status_lock = threading.Lock()

    @property
    def client(self):
        """Lazy property access to the client"""
        if self._client is None:
            self._client = self._setup_client()
        return self._client

    @alog.logged_function(log.debug)
    def deploy(
        self,
        resource_definitions: List[dict],
        retry_operation: bool = True,
        **_,
    ) -> Tuple[bool, bool]:
        """Deploy using the openshift client

        Args:
            resource_definitions:  list(dict)
                List of resource object dicts to apply to the cluster
            retry_operation:  bool
                If true, conflicts are retried with a linear backoff

        Returns:
            success:  bool
                True if deploy succeeded, False otherwise
            changed:  bool
                Whether or not the deployment resulted in changes
        """
        return self._retried_operation(
            resource_definitions,
            self._apply,
            max_retries=config.deploy_retries if retry_operation else 0,
        )

    @alog.logged_function(log.debug)
    def disable(self, resource_definitions: List[dict]) -> Tuple[bool, bool]:
        """Delete the given resources, treating missing resources as a success
        without change
        """
        return self._retried_operation(
            resource_definitions,
            self._disable,
            max_retries=config.deploy_retries,
        )

    def get_object_current_state(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, Optional[dict]]:
        """Fetch the current state using calls directly to the api client. A
        kind that the cluster does not serve (e.g. Route on vanilla
        kubernetes) is reported as a successful lookup with no content.
        """
        resources = self._get_resource_handle(kind, api_version)
        if not resources:
            return True, None

        if not namespace:
            resources.namespaced = False

        try:
            resource = resources.get(name=name, namespace=namespace)
        except ForbiddenError:
            log.debug(
                "Fetching objects of kind [%s] forbidden in namespace [%s]",
                kind,
                namespace,
            )
            return False, None
        except NotFoundError:
            log.debug(
                "No object named [%s/%s] found in namespace [%s]", kind, name, namespace
            )
            return True, None

        # If the resource was found, return it's dict representation
        return True, resource.to_dict()

    def update_status(self, resource: dict) -> bool:
        """Write resource["status"] through the status subresource. The body
        carries the caller's resourceVersion, so the api server rejects it with
        a 409 if the object moved on since it was read.
        """
        res_id = self._get_resource_identifiers(resource)
        resource_handle = self._get_resource_handle(res_id.kind, res_id.api_version)
        assert_cluster(
            resource_handle,
            f"Failed to fetch resource handle for {res_id.api_version}/{res_id.kind}",
        )
        if not res_id.namespace:
            resource_handle.namespaced = False

        with self._status_lock:
            try:
                updated = resource_handle.status.replace(body=resource)
            except DynamicConflictError as err:
                log.debug2("Conflict setting status: %s", err)
                raise ConflictError(str(err)) from err
            except NotFoundError as err:
                raise MissingResourceError(
                    f"{res_id.kind} {res_id.namespace}/{res_id.name} not found"
                ) from err

        new_version = (updated.to_dict().get("metadata") or {}).get(
            "resourceVersion"
        )
        if new_version:
            resource.setdefault("metadata", {})["resourceVersion"] = new_version
        log.debug2(
            "Successfully set the status for [%s/%s] in %s",
            res_id.kind,
            res_id.name,
            res_id.namespace,
        )
        return True

    def record_event(
        self,
        resource: dict,
        event_type: str,
        reason: str,
        message: str,
    ) -> bool:
        """Create a core/v1 Event pointing at the given object. Failing to
        record an event never fails the reconcile.
        """
        metadata = resource.get("metadata", {})
        namespace = metadata.get("namespace") or constants.DEFAULT_NAMESPACE
        now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        event = {
            "apiVersion": "v1",
            "kind": "Event",
            "metadata": {
                "name": f"{metadata.get('name')}.{uuid.uuid4().hex[:16]}",
                "namespace": namespace,
            },
            "involvedObject": {
                "apiVersion": resource.get("apiVersion"),
                "kind": resource.get("kind"),
                "name": metadata.get("name"),
                "namespace": metadata.get("namespace"),
                "uid": metadata.get("uid"),
                "resourceVersion": metadata.get("resourceVersion"),
            },
            "type": event_type,
            "reason": reason,
            "message": message,
            "source": {"component": constants.CONTROLLER_NAME},
            "firstTimestamp": now,
            "lastTimestamp": now,
            "count": 1,
        }
        try:
            event_handle = self.client.resources.get(api_version="v1", kind="Event")
            event_handle.create(body=event, namespace=namespace)
        except (DynamicApiError, ResourceNotFoundError) as err:
            log.warning("Failed to record %s event [%s]: %s", event_type, reason, err)
            return False
        return True

    ## Implementation Helpers ##################################################

    @staticmethod
    def _setup_client():
        """Create a DynamicClient that will work based on where the reconciler
        is running
        """
        # Try in-cluster config
        try:
            log.debug2("Running with in-cluster config")
            kube_config = kubernetes.client.Configuration()
            kubernetes.config.load_incluster_config(client_configuration=kube_config)
            api_client = kubernetes.client.ApiClient(kube_config)
            return DynamicClient(api_client)

        # Fall back to out-of-cluster config
        except kubernetes.config.ConfigException:
            log.debug2("Running with out-of-cluster config")
            return DynamicClient(kubernetes.config.new_client_from_config())

    @staticmethod
    def _strip_last_applied(resource_definitions):
        """Make sure that the last-applied annotation is not present in any of
        the resources. This can lead to recursive nesting!
        """
        for resource_definition in resource_definitions:
            annotations = resource_definition.get("metadata", {}).get(
                "annotations", {}
            )
            if annotations.get(LAST_APPLIED_CONFIG_ANNOTATION):
                log.debug3("Removing [%s]", LAST_APPLIED_CONFIG_ANNOTATION)
                del annotations[LAST_APPLIED_CONFIG_ANNOTATION]
                if not annotations:
                    del resource_definition["metadata"]["annotations"]

    def _get_resource_handle(self, kind: str, api_version: str) -> Optional[Resource]:
        """Get the openshift resource handle for a specified kind and api_version"""
        resources = None
        try:
            resources = self.client.resources.get(kind=kind, api_version=api_version)
        except (ResourceNotFoundError, ResourceNotUniqueError):
            log.debug(
                "No objects of kind [%s] found or multiple objects matching request found",
                kind,
            )
        return resources

    def _retried_operation(
        self,
        resource_definitions: List[dict],
        operation: Callable,
        max_retries: int,
    ) -> Tuple[bool, bool]:
        """Shared wrapper for executing a client operation with retries"""
        assert isinstance(
            resource_definitions, list
        ), "Programming Error: resource_definitions is not a list"

        if not resource_definitions:
            log.debug("Nothing to do for an empty list of resources")
            return True, False

        resource_definitions = [copy.deepcopy(dict(res)) for res in resource_definitions]
        self._strip_last_applied(resource_definitions)

        # Run each resource individually and stop at the first failure since
        # later resources may depend on earlier ones
        success = True
        changed = False
        for resource_definition in resource_definitions:
            try:
                changed = (
                    self._run_individual_operation_with_retries(
                        operation, max_retries, resource_definition
                    )
                    or changed
                )
            except Exception as err:  # pylint: disable=broad-except
                log.warning(
                    "Operation [%s] failed to execute: %s",
                    operation.__name__,
                    err,
                    exc_info=True,
                )
                success = False
                break

        return success, changed

    def _run_individual_operation_with_retries(
        self,
        operation: Callable,
        remaining_retries: int,
        resource_definition: dict,
    ) -> bool:
        """Run a single operation, retrying resourceVersion conflicts with a
        linear backoff and a refreshed resourceVersion
        """
        try:
            return operation(resource_definition)
        except DynamicConflictError as err:
            log.debug2("Handling ConflictError: %s", err)
            if not remaining_retries:
                raise

            backoff_duration = config.retry_backoff_base_seconds * (
                config.deploy_retries - remaining_retries + 1
            )
            log.debug3("Retrying in %fs", backoff_duration)
            time.sleep(backoff_duration)

            res_id = self._get_resource_identifiers(resource_definition)
            success, content = self.get_object_current_state(
                kind=res_id.kind,
                name=res_id.name,
                namespace=res_id.namespace,
                api_version=res_id.api_version,
            )
            assert_cluster(
                success and content is not None,
                "Failed to fetch updated resourceVersion for "
                f"{res_id.namespace}/{res_id.api_version}/{res_id.kind}/{res_id.name}",
            )
            resource_definition.setdefault("metadata", {})[
                "resourceVersion"
            ] = content.get("metadata", {}).get("resourceVersion")
            return self._run_individual_operation_with_retries(
                operation, remaining_retries - 1, resource_definition
            )

    @classmethod
    def _manifest_diff(cls, manifest_a: dict, manifest_b: dict) -> bool:
        """Compare two manifests for meaningful diff while ignoring fields that
        change on every write
        """
        manifest_a = copy.deepcopy(manifest_a)
        manifest_b = copy.deepcopy(manifest_b)
        for manifest in (manifest_a, manifest_b):
            manifest.pop("status", None)
            for metadata_field in [
                "resourceVersion",
                "generation",
                "managedFields",
                "uid",
                "creationTimestamp",
            ]:
                manifest.get("metadata", {}).pop(metadata_field, None)
        cls._strip_last_applied([manifest_a, manifest_b])
        change = bool(recursive_diff(manifest_a, manifest_b))
        log.debug2("Found change? %s", change)
        return change

    # Internal struct to hold the key resource identifier elements
    _ResourceIdentifiers = namedtuple(
        "ResourceIdentifiers", ["api_version", "kind", "name", "namespace"]
    )

    @classmethod
    def _get_resource_identifiers(cls, resource_definition):
        """Helper for getting the required parts of a single resource definition"""
        api_version = resource_definition.get("apiVersion")
        kind = resource_definition.get("kind")
        name = resource_definition.get("metadata", {}).get("name")
        namespace = resource_definition.get("metadata", {}).get("namespace")
        assert None not in [
            api_version,
            kind,
            name,
        ], "Cannot apply resource without apiVersion, kind or name"
        return cls._ResourceIdentifiers(api_version, kind, name, namespace)

    ################
    ## Operations ##
    ################

    def _apply(self, resource_definition: dict) -> bool:
        """Server side apply a single resource if it differs from what is in
        the cluster

        Returns:
            changed:  bool
                Whether or not the apply resulted in a meaningful change
        """
        res_id = self._get_resource_identifiers(resource_definition)
        success, current = self.get_object_current_state(
            kind=res_id.kind,
            name=res_id.name,
            namespace=res_id.namespace,
            api_version=res_id.api_version,
        )
        assert_cluster(
            success,
            "Failed to fetch current state for "
            f"{res_id.namespace}/{res_id.api_version}/{res_id.kind}/{res_id.name}",
        )
        current = current or {}
        if not self._manifest_diff(current, resource_definition):
            log.debug2("No change for [%s/%s]", res_id.kind, res_id.name)
            return False

        resource_handle = self._get_resource_handle(res_id.kind, res_id.api_version)
        assert_cluster(
            resource_handle,
            f"Failed to fetch resource handle for {res_id.api_version}/{res_id.kind}",
        )

        # Let the server own managedFields
        resource_definition["metadata"]["managedFields"] = None
        log.debug2(
            "Attempting to apply [%s/%s/%s] in %s",
            res_id.api_version,
            res_id.kind,
            res_id.name,
            res_id.namespace,
        )
        try:
            applied = resource_handle.server_side_apply(
                resource_definition,
                name=res_id.name,
                namespace=res_id.namespace,
                field_manager=FIELD_MANAGER,
            ).to_dict()
        except DynamicConflictError:
            log.debug(
                "Overriding field manager conflict for [%s/%s]",
                res_id.kind,
                res_id.name,
            )
            applied = resource_handle.server_side_apply(
                resource_definition,
                name=res_id.name,
                namespace=res_id.namespace,
                field_manager=FIELD_MANAGER,
                force_conflicts=True,
            ).to_dict()

        # The applied result may still match the old state (e.g. removing a
        # field from the applied manifest does not remove it from the object)
        return self._manifest_diff(current, applied)

    def _disable(self, resource_definition: dict) -> bool:
        """Delete a single resource if it exists

        Returns:
            changed:  bool
                Whether or not anything was deleted
        """
        res_id = self._get_resource_identifiers(resource_definition)
        try:
            resource_handle = self.client.resources.get(
                api_version=res_id.api_version, kind=res_id.kind
            )
            if not res_id.namespace:
                resource_handle.namespaced = False
            log.debug2(
                "Attempting to delete [%s/%s/%s] from %s",
                res_id.api_version,
                res_id.kind,
                res_id.name,
                res_id.namespace,
            )
            resource_handle.delete(name=res_id.name, namespace=res_id.namespace)
            return True

        # If the kind or instance is not found, that's a success without change
        except (ResourceNotFoundError, NotFoundError) as err:
            log.debug2(
                "Valid error caught when disabling [%s/%s]: %s",
                res_id.kind,
                res_id.name,
                err,
            )
            return False
