"""
Typed views over the Grafana custom resource. The CR itself is held as the
raw manifest dict; these helpers read the handful of spec fields the
reconciler needs and give the status a value type that can be compared field
by field.

The relevant parts of the CR schema are:
{
    "spec": {
        "ingress": {"enabled": bool, "hostname": str},
        "client": {"preferService": bool, "timeout": int},
        "config": {"server": {"http_port": str}},
        "service": {"name": str},
        "dashboardLabelSelector": [label selector, ...],
        "dashboardNamespaceSelector": label selector,
    },
    "status": {
        "phase": "reconciling" | "failing",
        "message": str,
        "previousServiceName": str,
        "installedDashboards": [dashboard ref, ...],
    },
}
"""

# Standard
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional
import copy

# First Party
import aconfig
import alog

# Local
from . import config
from .utils import nested_get

log = alog.use_channel("MODEL")


@dataclass(frozen=True)
class ResourceIdentity:
    """The namespaced name of a Grafana CR"""

    namespace: str
    name: str

    def __str__(self):
        return f"{self.namespace}/{self.name}"


class StatusPhase(Enum):
    """The phase reported in status.phase"""

    RECONCILING = "reconciling"
    FAILING = "failing"


## Dashboards ##################################################################


@dataclass
class GrafanaDashboardRef:
    """Reference to a dashboard installed into the grafana instance by the
    dashboard controller
    """

    name: str
    namespace: str
    uid: str = ""
    hash: str = ""
    folder_id: Optional[int] = None
    folder_name: str = ""

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def from_dict(cls, content: dict) -> "GrafanaDashboardRef":
        return cls(
            name=content.get("name", ""),
            namespace=content.get("namespace", ""),
            uid=content.get("uid", ""),
            hash=content.get("hash", ""),
            folder_id=content.get("folderId"),
            folder_name=content.get("folderName", ""),
        )

    def to_dict(self) -> dict:
        content = {
            "name": self.name,
            "namespace": self.namespace,
            "uid": self.uid,
            "hash": self.hash,
            "folderName": self.folder_name,
        }
        if self.folder_id is not None:
            content["folderId"] = self.folder_id
        return content


## Status ######################################################################


class GrafanaStatus:
    """Mutable value type for the CR status.

    Equality is explicit and field by field so that the reconciler can tell
    whether a write is needed without relying on the shape of the raw dict
    (e.g. a missing list vs an empty list).
    """

    def __init__(
        self,
        phase: Optional[StatusPhase] = None,
        message: str = "",
        previous_service_name: str = "",
        installed_dashboards: Optional[List[GrafanaDashboardRef]] = None,
    ):
        self.phase = phase
        self.message = message
        self.previous_service_name = previous_service_name
        self.installed_dashboards = list(installed_dashboards or [])

    @classmethod
    def from_dict(cls, content: Optional[dict]) -> "GrafanaStatus":
        content = content or {}
        phase = content.get("phase")
        try:
            phase = StatusPhase(phase) if phase else None
        except ValueError:
            log.debug("Ignoring unknown status phase [%s]", phase)
            phase = None
        return cls(
            phase=phase,
            message=content.get("message", ""),
            previous_service_name=content.get("previousServiceName", ""),
            installed_dashboards=[
                GrafanaDashboardRef.from_dict(ref)
                for ref in content.get("installedDashboards") or []
            ],
        )

    def to_dict(self) -> dict:
        content = {
            "message": self.message,
            "installedDashboards": [
                ref.to_dict() for ref in self.installed_dashboards
            ],
        }
        if self.phase is not None:
            content["phase"] = self.phase.value
        if self.previous_service_name:
            content["previousServiceName"] = self.previous_service_name
        return content

    def __eq__(self, other):
        if not isinstance(other, GrafanaStatus):
            return NotImplemented
        return (
            self.phase == other.phase
            and self.message == other.message
            and self.previous_service_name == other.previous_service_name
            and self.installed_dashboards == other.installed_dashboards
        )

    def __repr__(self):
        return (
            f"GrafanaStatus(phase={self.phase}, message={self.message!r}, "
            f"installed_dashboards={len(self.installed_dashboards)})"
        )


## Instance ####################################################################


class GrafanaInstance:
    """Working view of a single Grafana CR. The manifest (minus status) is held
    as an aconfig.Config and the status is parsed into a GrafanaStatus which is
    the source of truth for the status when writing back.
    """

    def __init__(self, manifest: dict):
        manifest = dict(manifest)
        self.status = GrafanaStatus.from_dict(manifest.pop("status", None))
        self.manifest = aconfig.Config(manifest, override_env_vars=False)

        metadata = self.manifest.get("metadata", {})
        self.name = metadata.get("name")
        self.namespace = metadata.get("namespace")
        self.kind = self.manifest.get("kind")
        self.api_version = self.manifest.get("apiVersion")
        assert self.name is not None, "No name found"

    @property
    def identity(self) -> ResourceIdentity:
        return ResourceIdentity(namespace=self.namespace, name=self.name)

    @property
    def spec(self) -> dict:
        return self.manifest.get("spec") or {}

    @property
    def resource_version(self) -> Optional[str]:
        return self.manifest.get("metadata", {}).get("resourceVersion")

    @resource_version.setter
    def resource_version(self, resource_version: Optional[str]):
        self.manifest["metadata"]["resourceVersion"] = resource_version

    def deep_copy(self) -> "GrafanaInstance":
        """Make an independent working copy, including any status changes
        already made on this instance
        """
        return GrafanaInstance(self.to_dict())

    def to_dict(self) -> dict:
        """Render the manifest with the current status"""
        manifest = _to_plain(self.manifest)
        manifest["status"] = self.status.to_dict()
        return manifest

    ## Spec accessors ##########################################################

    @property
    def prefer_service(self) -> bool:
        return bool(nested_get(self.spec, "client.preferService", False))

    @property
    def ingress_enabled(self) -> bool:
        return bool(nested_get(self.spec, "ingress.enabled", False))

    @property
    def ingress_hostname(self) -> str:
        return nested_get(self.spec, "ingress.hostname") or ""

    @property
    def service_name(self) -> str:
        return nested_get(self.spec, "service.name") or config.default_service_name

    @property
    def dashboard_label_selectors(self) -> List[dict]:
        return _to_plain(list(self.spec.get("dashboardLabelSelector") or []))

    @property
    def dashboard_namespace_selector(self) -> Optional[dict]:
        return _to_plain(self.spec.get("dashboardNamespaceSelector"))

    @property
    def grafana_port(self) -> int:
        """The http port grafana listens on. The CR carries it as a string in
        the grafana.ini section, so anything unparseable falls back to the
        default.
        """
        port = nested_get(self.spec, "config.server.http_port")
        if port in (None, ""):
            return config.default_grafana_port
        try:
            return int(port)
        except (TypeError, ValueError):
            log.warning("Invalid http_port [%s], using default", port)
            return config.default_grafana_port

    @property
    def client_timeout(self) -> int:
        """Timeout for the dashboard controller's grafana client. A negative
        override is treated as unset.
        """
        timeout = nested_get(self.spec, "client.timeout")
        if timeout is None or isinstance(timeout, bool):
            return config.default_client_timeout_seconds
        try:
            timeout = int(timeout)
        except (TypeError, ValueError):
            log.warning("Invalid client timeout [%s], using default", timeout)
            return config.default_client_timeout_seconds
        if timeout < 0:
            return config.default_client_timeout_seconds
        return timeout

    def __str__(self):
        return f"{self.api_version}/{self.kind}/{self.namespace}/{self.name}"


def _to_plain(value):
    """Copy a manifest into plain dicts and lists so that it can be handed to
    the cluster client and compared without the Config wrappers
    """
    if isinstance(value, dict):
        return {key: _to_plain(val) for key, val in value.items()}
    if isinstance(value, list):
        return [_to_plain(item) for item in value]
    return copy.deepcopy(value)
