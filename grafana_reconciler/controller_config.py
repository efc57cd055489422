"""
The ControllerConfig is the configuration shared between the grafana
reconciler and its sibling controllers (e.g. the dashboard controller). It
holds keyed config values, the inventory of dashboards installed into the
grafana instance, and the plugin inventory.

A single instance is created when the process starts and handed to every
controller that needs it. It stays valid for the life of the process; when the
Grafana CR disappears, the reconciler removes the dependent keys and calls
cleanup() so that nothing cached for the old instance leaks into a new one.
All methods are safe to call from multiple threads.
"""

# Standard
from threading import RLock
from typing import Any, Dict, List, Optional
import copy

# First Party
import alog

# Local
from .model import GrafanaDashboardRef

log = alog.use_channel("CTRLCFG")


class ControllerConfig:
    """Internally synchronized keyed store shared across controllers"""

    def __init__(self, values: Optional[Dict[str, Any]] = None):
        self._lock = RLock()
        self._values = dict(values or {})
        self._plugins = {}

        # None until something sets it. The reconciler only initializes the
        # inventory on its first successful cycle so that it can tell "never
        # synced" apart from "synced and empty".
        self._dashboards = None

    ## Config items ############################################################

    def add_config_item(self, key: str, value: Any):
        """Set a config value. Empty keys and empty values are ignored."""
        if not key or value is None or value == "":
            return
        with self._lock:
            log.debug2("Setting config item [%s]", key)
            self._values[key] = value

    def remove_config_item(self, key: str):
        with self._lock:
            if self._values.pop(key, None) is not None:
                log.debug("Removed config item [%s]", key)

    def get_config_item(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(key, default)

    def get_config_string(self, key: str, default: str = "") -> str:
        value = self.get_config_item(key)
        if isinstance(value, str):
            return value
        return default

    def get_config_bool(self, key: str, default: bool = False) -> bool:
        value = self.get_config_item(key)
        if isinstance(value, bool):
            return value
        return default

    ## Dashboards ##############################################################

    @property
    def dashboards(self) -> Optional[List[GrafanaDashboardRef]]:
        """A copy of the dashboard inventory, or None if it was never set"""
        with self._lock:
            return copy.deepcopy(self._dashboards)

    def set_dashboards(self, dashboards: List[GrafanaDashboardRef]):
        with self._lock:
            self._dashboards = copy.deepcopy(list(dashboards))

    def get_dashboards(self, namespace: str = "") -> List[GrafanaDashboardRef]:
        """Get the dashboards in the given namespace, or all of them if no
        namespace is given
        """
        with self._lock:
            dashboards = self._dashboards or []
            return copy.deepcopy(
                [ref for ref in dashboards if not namespace or ref.namespace == namespace]
            )

    def has_dashboard(self, namespace: str, name: str) -> bool:
        return self._find_dashboard(namespace, name) is not None

    def add_dashboard(self, dashboard: GrafanaDashboardRef):
        """Add a dashboard to the inventory, replacing any existing entry with
        the same namespace/name
        """
        with self._lock:
            if self._dashboards is None:
                self._dashboards = []
            index = self._find_dashboard(dashboard.namespace, dashboard.name)
            dashboard = copy.deepcopy(dashboard)
            if index is None:
                self._dashboards.append(dashboard)
            else:
                self._dashboards[index] = dashboard

    def remove_dashboard(self, namespace: str, name: str):
        with self._lock:
            index = self._find_dashboard(namespace, name)
            if index is not None:
                del self._dashboards[index]

    def invalidate_dashboards(self):
        """Clear the hash of every known dashboard so that the dashboard
        controller pushes all of them again on its next sync
        """
        with self._lock:
            log.debug("Invalidating %d dashboards", len(self._dashboards or []))
            for ref in self._dashboards or []:
                ref.hash = ""

    ## Plugins #################################################################

    def set_plugins(self, instance_key: str, plugins: List[dict]):
        with self._lock:
            self._plugins[instance_key] = copy.deepcopy(list(plugins))

    def get_plugins(self, instance_key: str) -> List[dict]:
        with self._lock:
            return copy.deepcopy(self._plugins.get(instance_key, []))

    ## Lifecycle ###############################################################

    def cleanup(self, force: bool):
        """Drop state derived from the current grafana instance. The dashboard
        inventory is always reset; the plugin inventory is only reset when
        forced.
        """
        with self._lock:
            log.debug("Cleaning up controller config (force=%s)", force)
            self._dashboards = []
            if force:
                self._plugins = {}

    ## Implementation Details ##################################################

    def _find_dashboard(self, namespace: str, name: str) -> Optional[int]:
        with self._lock:
            for index, ref in enumerate(self._dashboards or []):
                if ref.namespace == namespace and ref.name == name:
                    return index
            return None
