"""
This module implements custom exceptions
"""

## Base Error ##################################################################


class GrafanaReconcilerError(Exception):
    """Base class for all grafana_reconciler exceptions"""

    def __init__(self, message: str, is_fatal_error: bool):
        """Construct with a flag indicating whether this is a fatal error. This
        will be a static property of all children.
        """
        super().__init__(message)
        self._is_fatal_error = is_fatal_error

    @property
    def is_fatal_error(self):
        """Property indicating whether or not this error should abort the
        reconcile without a status update
        """
        return self._is_fatal_error


## Fatal Errors ################################################################


class ReconcilerFatalError(GrafanaReconcilerError):
    """A ReconcilerFatalError is one that indicates an unexpected failure that
    prevents the reconcile from reporting anything back onto the resource.
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=True)


class ConfigError(ReconcilerFatalError):
    """Exception caused during usage of user-provided configuration"""


class ClusterError(ReconcilerFatalError):
    """Exception caused when a cluster operation fails in an unexpected way"""


## Expected Errors #############################################################


class ReconcilerExpectedError(GrafanaReconcilerError):
    """A ReconcilerExpectedError is one that indicates an expected failure
    condition that is expected to resolve in a subsequent reconciliation.
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=False)


class ResourceNotFoundError(ReconcilerExpectedError):
    """Exception raised when a requested object does not exist in the cluster"""


class ConflictError(ReconcilerExpectedError):
    """Exception raised when a write loses an optimistic concurrency race
    because the object was modified since it was read
    """


class ActionError(ReconcilerExpectedError):
    """Exception raised when an action in a plan fails to apply"""

    def __init__(self, message: str = "", action=None):
        self.action = action
        super().__init__(message)


class AdminUrlError(ReconcilerExpectedError):
    """Exception raised when no reachable admin url can be found"""


class ReconcileCancelledError(ReconcilerExpectedError):
    """Exception raised when the reconcile was asked to stop"""


## Assertions ##################################################################


def assert_config(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ConfigError. This should be
    used when a condition on the library config or the CR must hold.
    """
    if not condition:
        raise ConfigError(message)


def assert_cluster(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ClusterError. This should
    be used when an operation in the cluster (such as fetching an existing
    service) must succeed.
    """
    if not condition:
        raise ClusterError(message)
