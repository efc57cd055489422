"""
Actions are the individual mutations that move the cluster toward the desired
state of a Grafana CR. A plan is an ordered list of actions and the
ActionRunner applies them strictly in order, stopping at the first failure.

Every action is an idempotent upsert or delete, so a plan that stopped half
way is simply picked up again on the next reconcile. Nothing that was already
applied is rolled back.
"""

# Standard
from typing import List, Optional
import abc
import threading

# First Party
import alog

# Local
from .deploy_manager import DeployManagerBase
from .deploy_manager.owner_references import update_owner_references
from .exceptions import ActionError, ReconcileCancelledError

log = alog.use_channel("ACTION")


class Action(abc.ABC):
    """A single step of a plan"""

    def __init__(self, resource: Optional[dict], message: str):
        self.resource = resource
        self.message = message

    @abc.abstractmethod
    def run(self, deploy_manager: DeployManagerBase) -> bool:
        """Apply the action

        Returns:
            success:  bool
                Whether or not the action was applied
        """

    def __str__(self):
        return f"{self.__class__.__name__}({self.message})"

    def __repr__(self):
        return str(self)


class CreateOrUpdateAction(Action):
    """Create the resource, or bring an existing one up to date"""

    def set_owner(self, deploy_manager: DeployManagerBase, owner_cr: dict):
        """Merge an ownerReference for the owner CR into the resource"""
        update_owner_references(deploy_manager, owner_cr, self.resource)

    def run(self, deploy_manager: DeployManagerBase) -> bool:
        success, changed = deploy_manager.deploy([self.resource])
        log.debug3("%s changed=%s", self, changed)
        return success


class DeleteAction(Action):
    """Remove the resource if it exists"""

    def run(self, deploy_manager: DeployManagerBase) -> bool:
        success, changed = deploy_manager.disable([self.resource])
        log.debug3("%s changed=%s", self, changed)
        return success


class LogAction(Action):
    """No-op step that only reports its message"""

    def __init__(self, message: str):
        super().__init__(resource=None, message=message)

    def run(self, deploy_manager: DeployManagerBase) -> bool:
        return True


class ActionRunner:
    """Applies a plan through a DeployManager. If an owner CR is given, every
    created or updated resource is marked as owned by it.
    """

    def __init__(
        self,
        deploy_manager: DeployManagerBase,
        owner_cr: Optional[dict] = None,
    ):
        self.deploy_manager = deploy_manager
        self.owner_cr = owner_cr

    def run_all(
        self,
        actions: List[Action],
        cancel_event: Optional[threading.Event] = None,
    ):
        """Run every action in order

        Raises:
            ActionError: an action failed; the remaining actions were skipped
            ReconcileCancelledError: cancellation was requested between actions
        """
        for index, action in enumerate(actions):
            if cancel_event is not None and cancel_event.is_set():
                raise ReconcileCancelledError(
                    f"Cancelled before action {index + 1}/{len(actions)}"
                )
            try:
                if self.owner_cr is not None and isinstance(
                    action, CreateOrUpdateAction
                ):
                    action.set_owner(self.deploy_manager, self.owner_cr)
                success = action.run(self.deploy_manager)
            except ActionError:
                raise
            except Exception as err:  # pylint: disable=broad-except
                log.warning("Action [%s] raised: %s", action, err, exc_info=True)
                raise ActionError(f"{action.message}: {err}", action=action) from err
            if not success:
                log.warning("Action [%s] failed", action)
                raise ActionError(f"{action.message}: failed", action=action)
            log.info("(%5d) %s", index, action.message)
