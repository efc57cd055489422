"""
Shared module to hold constant values for the library
"""

# Name used for the logging channel prefix and as the event source component
CONTROLLER_NAME = "grafana-controller"

## ControllerConfig keys ########################################################

# Label selector override shared with the dashboard controller. Removing it
# stops the dashboard controller from reconciling.
CONFIG_DASHBOARD_LABEL_SELECTOR = "grafana.dashboard.selector"

# Set by the dashboard controller once it has synced the cluster dashboards
CONFIG_GRAFANA_DASHBOARDS_SYNCED = "grafana.dashboards.synced"

# Whether the platform is openshift (routes) or vanilla kubernetes (ingresses)
CONFIG_OPENSHIFT = "mode.openshift"

## Status ######################################################################

SUCCESS_MESSAGE = "success"

## Events ######################################################################

EVENT_TYPE_WARNING = "Warning"
PROCESSING_ERROR_REASON = "ProcessingError"

## Child resources #############################################################

SERVICE_KIND = "Service"
SERVICE_API_VERSION = "v1"
INGRESS_KIND = "Ingress"
INGRESS_API_VERSION = "networking.k8s.io/v1"
ROUTE_KIND = "Route"
ROUTE_API_VERSION = "route.openshift.io/v1"

# Default namespace if none given
DEFAULT_NAMESPACE = "default"

# Delimiter used for nested dict keys
NESTED_DICT_DELIM = "."
