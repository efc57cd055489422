"""
This module holds the logic for writing the reconciler's view of a Grafana CR
back onto its status.

The status is only written when it differs from what is in the cluster right
now, so a steady-state reconcile loop does not churn resourceVersions. Other
writers (users, other controllers) may touch the CR at the same time. The
write is conditional on the resourceVersion of the working copy, and losing
that race is not an error: the next reconcile recomputes the status from
scratch.
"""

# First Party
import alog

# Local
from . import config
from .deploy_manager import DeployManagerBase
from .exceptions import ConflictError
from .model import GrafanaInstance, GrafanaStatus

log = alog.use_channel("STTUS")


class StatusReconciler:
    """Idempotent status writer for Grafana CRs"""

    def __init__(self, deploy_manager: DeployManagerBase):
        self.deploy_manager = deploy_manager

    def sync_status(self, instance: GrafanaInstance) -> bool:
        """Write instance.status onto the CR if it differs from the cluster

        Args:
            instance:  GrafanaInstance
                The working copy holding the identity, the resourceVersion it
                was read at, and the desired status

        Returns:
            written:  bool
                True if the status was written, False if nothing needed to be
                written or another writer got there first

        Raises:
            ResourceNotFoundError: the CR no longer exists
            ClusterError: the CR could not be read
        """
        current = self.deploy_manager.fetch_object(
            kind=instance.kind or config.grafana_kind,
            name=instance.name,
            namespace=instance.namespace,
            api_version=instance.api_version or config.grafana_api_version,
        )
        current_status = GrafanaStatus.from_dict(current.get("status"))
        if current_status == instance.status:
            log.debug2("Status of %s is up to date", instance.identity)
            return False

        log.debug3(
            "Status of %s: %s -> %s", instance.identity, current_status, instance.status
        )
        body = instance.to_dict()
        try:
            self.deploy_manager.update_status(body)
        except ConflictError as err:
            log.debug("Status write for %s lost a race: %s", instance.identity, err)
            return False

        # Later writes in this cycle must be conditional on the version this
        # write produced
        instance.resource_version = body.get("metadata", {}).get("resourceVersion")
        log.debug("Updated status of %s", instance.identity)
        return True
