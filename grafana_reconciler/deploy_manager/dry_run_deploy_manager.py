"""
The DryRunDeployManager implements the DeployManager interface but does not
actually interact with the cluster and instead holds the state of the cluster in
a local map.
"""

# Standard
from datetime import datetime
from threading import RLock
import copy
import itertools
import uuid

# First Party
import alog

# Local
from ..exceptions import ConflictError, ResourceNotFoundError
from .base import DeployManagerBase

log = alog.use_channel("DRY-RUN")

# Lock to ensure reads and writes of the cluster content are thread safe
DRY_RUN_CLUSTER_LOCK = RLock()


class DryRunDeployManager(DeployManagerBase):
    """
    Deploy manager which doesn't actually deploy!
    """

    def __init__(
        self,
        resources=None,
        strict_resource_version=False,
    ):
        """Construct with an optional set of resources to pre-populate the
        cluster with

        Args:
            resources:  Optional[List[dict]]
                Manifests that exist in the cluster from the start
            strict_resource_version:  bool
                If true, a deploy carrying a stale resourceVersion fails
        """
        self._cluster_content = {}
        self._resource_versions = itertools.count(1)
        self.strict_resource_version = strict_resource_version

        # Events recorded against objects, oldest first
        self.events = []

        self._deploy(resources or [])

    ## Interface ###############################################################

    def deploy(self, resource_definitions, **_):
        log.info("DRY RUN deploy")
        return self._deploy(resource_definitions)

    def disable(self, resource_definitions):
        log.info("DRY RUN disable")
        changed = False
        for resource in resource_definitions:
            api_version = resource.get("apiVersion")
            kind = resource.get("kind")
            name = resource.get("metadata", {}).get("name")
            namespace = resource.get("metadata", {}).get("namespace")
            with DRY_RUN_CLUSTER_LOCK:
                entries = (
                    self._cluster_content.get(namespace, {})
                    .get(kind, {})
                    .get(api_version, {})
                )
                if name in entries:
                    log.debug("DRY RUN delete [%s/%s/%s]", namespace, kind, name)
                    self._delete_key(namespace, kind, api_version, name)
                    changed = True
        return True, changed

    def get_object_current_state(self, kind, name, namespace=None, api_version=None):
        log.info(
            "DRY RUN get_object_current_state of [%s/%s] in [%s]", kind, name, namespace
        )
        with DRY_RUN_CLUSTER_LOCK:
            matches = []
            kind_entries = self._cluster_content.get(namespace, {}).get(kind, {})
            for api_ver, entries in kind_entries.items():
                if name in entries and (api_ver == api_version or api_version is None):
                    matches.append(entries[name])
            log.debug(
                "Found %d matches for [%s/%s] in %s",
                len(matches),
                kind,
                name,
                namespace,
            )
            if len(matches) == 1:
                return True, copy.deepcopy(matches[0])
            return True, None

    def update_status(self, resource):
        api_version = resource.get("apiVersion")
        kind = resource.get("kind")
        metadata = resource.get("metadata", {})
        name = metadata.get("name")
        namespace = metadata.get("namespace")
        log.info("DRY RUN update_status of [%s/%s] in %s", kind, name, namespace)

        with DRY_RUN_CLUSTER_LOCK:
            current = (
                self._cluster_content.get(namespace, {})
                .get(kind, {})
                .get(api_version, {})
                .get(name)
            )
            if current is None:
                raise ResourceNotFoundError(f"{kind} {namespace}/{name} not found")

            expected_version = metadata.get("resourceVersion")
            current_version = current.get("metadata", {}).get("resourceVersion")
            if expected_version and expected_version != current_version:
                log.debug(
                    "Status write for [%s/%s] rejected: resourceVersion %s != %s",
                    kind,
                    name,
                    expected_version,
                    current_version,
                )
                raise ConflictError(
                    f"Operation cannot be fulfilled on {kind} {namespace}/{name}: "
                    "the object has been modified"
                )

            new_status = copy.deepcopy(resource.get("status"))
            changed = current.get("status") != new_status
            current["status"] = new_status
            new_version = str(next(self._resource_versions))
            current.setdefault("metadata", {})["resourceVersion"] = new_version
            resource.setdefault("metadata", {})["resourceVersion"] = new_version
            return changed

    def record_event(self, resource, event_type, reason, message):
        metadata = resource.get("metadata", {})
        log.info(
            "DRY RUN record_event [%s/%s] on %s/%s: %s",
            event_type,
            reason,
            resource.get("kind"),
            metadata.get("name"),
            message,
        )
        with DRY_RUN_CLUSTER_LOCK:
            self.events.append(
                {
                    "type": event_type,
                    "reason": reason,
                    "message": message,
                    "involvedObject": {
                        "apiVersion": resource.get("apiVersion"),
                        "kind": resource.get("kind"),
                        "name": metadata.get("name"),
                        "namespace": metadata.get("namespace"),
                        "uid": metadata.get("uid"),
                    },
                    "lastTimestamp": datetime.now().isoformat(),
                }
            )
        return True

    ## Implementation Details ##################################################

    def _delete_key(self, namespace, kind, api_version, name):
        del self._cluster_content[namespace][kind][api_version][name]
        if not self._cluster_content[namespace][kind][api_version]:
            del self._cluster_content[namespace][kind][api_version]
        if not self._cluster_content[namespace][kind]:
            del self._cluster_content[namespace][kind]
        if not self._cluster_content[namespace]:
            del self._cluster_content[namespace]

    def _deploy(self, resource_definitions):
        changes = False
        for resource in resource_definitions:
            resource = copy.deepcopy(dict(resource))
            api_version = resource.get("apiVersion")
            kind = resource.get("kind")
            name = resource.get("metadata", {}).get("name")
            namespace = resource.get("metadata", {}).get("namespace")
            log.debug(
                "DRY RUN deploy [%s/%s/%s/%s]", namespace, kind, api_version, name
            )
            log.debug4(resource)

            with DRY_RUN_CLUSTER_LOCK:
                entries = (
                    self._cluster_content.setdefault(namespace, {})
                    .setdefault(kind, {})
                    .setdefault(api_version, {})
                )
                current = copy.deepcopy(entries.get(name, {}))
                current_metadata = current.get("metadata", {})
                old_resource_version = current_metadata.pop("resourceVersion", None)

                metadata = resource.setdefault("metadata", {})
                if (
                    self.strict_resource_version
                    and metadata.get("resourceVersion")
                    and old_resource_version
                    and metadata.get("resourceVersion") != old_resource_version
                ):
                    log.warning(
                        "Unable to deploy resource. resourceVersion is out of date"
                    )
                    return False, changes

                # Status is only written through update_status
                if current and "status" in current:
                    resource["status"] = current["status"]

                metadata.pop("resourceVersion", None)
                metadata["creationTimestamp"] = current_metadata.get(
                    "creationTimestamp", datetime.now().isoformat()
                )
                metadata["uid"] = current_metadata.get(
                    "uid", metadata.get("uid", str(uuid.uuid4()))
                )
                changes = changes or (current != resource)
                metadata["resourceVersion"] = str(next(self._resource_versions))
                entries[name] = resource

        return True, changes
