"""
This defines the base class for all DeployManager types. A DeployManager is
the reconciler's only handle on the object store: reading the Grafana CR and
its children, applying child resources, writing status, and recording events.
"""

# Standard
from typing import List, Optional, Tuple
import abc

# Local
from ..exceptions import ResourceNotFoundError, assert_cluster


class DeployManagerBase(abc.ABC):
    """
    Base class for deploy managers which will be responsible for carrying out
    the actual interaction with the cluster
    """

    @abc.abstractmethod
    def deploy(self, resource_definitions: List[dict]) -> Tuple[bool, bool]:
        """Ensure that the resources defined in the list of definitions are
        created or updated in the cluster. Resources are applied in order and
        the first failure stops the rest.

        Args:
            resource_definitions:  list(dict)
                List of resource object dicts to apply to the cluster

        Returns:
            success:  bool
                Whether or not the deploy succeeded
            changed:  bool
                Whether or not the deployment resulted in changes
        """

    @abc.abstractmethod
    def disable(self, resource_definitions: List[dict]) -> Tuple[bool, bool]:
        """Ensure that the resources defined in the list of definitions are
        deleted from the cluster

        Args:
            resource_definitions:  list(dict)
                List of resource object dicts to remove from the cluster

        Returns:
            success:  bool
                Whether or not the delete succeeded
            changed:  bool
                Whether or not the delete resulted in changes
        """

    @abc.abstractmethod
    def get_object_current_state(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, Optional[dict]]:
        """Fetch the current state of a given object by name

        Args:
            kind:  str
                The kind of the object to fetch
            name:  str
                The full name of the object to fetch
            namespace:  str
                The namespace to search for the object
            api_version:  str
                The api_version of the resource kind to fetch

        Returns:
            success:  bool
                Whether or not the state fetch operation succeeded
            current_state:  dict or None
                The dict representation of the current object's configuration,
                or None if not present
        """

    @abc.abstractmethod
    def update_status(self, resource: dict) -> bool:
        """Replace the status of the given object with resource["status"].

        The write is conditional on metadata.resourceVersion: if the object in
        the cluster has moved on since the given manifest was read, the write
        is rejected. On success, metadata.resourceVersion of the given manifest
        is updated in place to the version the write produced.

        Args:
            resource:  dict
                The full manifest holding identifiers, resourceVersion and the
                new status

        Returns:
            changed:  bool
                Whether or not the status update resulted in a change

        Raises:
            ConflictError: the resourceVersion is stale
            ResourceNotFoundError: the object no longer exists
        """

    @abc.abstractmethod
    def record_event(
        self,
        resource: dict,
        event_type: str,
        reason: str,
        message: str,
    ) -> bool:
        """Record a kubernetes Event against the given object

        Args:
            resource:  dict
                The manifest of the object the event refers to
            event_type:  str
                Normal or Warning
            reason:  str
                Short CamelCase reason
            message:  str
                Human readable description

        Returns:
            success:  bool
                Whether or not the event was recorded
        """

    ## Shared Helpers ##########################################################

    def fetch_object(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> dict:
        """Fetch an object that must exist, distinguishing a missing object
        from a failed lookup

        Raises:
            ResourceNotFoundError: the lookup succeeded but found nothing
            ClusterError: the lookup itself failed
        """
        success, content = self.get_object_current_state(
            kind=kind, name=name, namespace=namespace, api_version=api_version
        )
        assert_cluster(
            success, f"Failed to fetch current state of {kind}/{namespace}/{name}"
        )
        if content is None:
            raise ResourceNotFoundError(f"{kind} {namespace}/{name} not found")
        return content
