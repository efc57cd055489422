"""
The ControllerEventBus carries the grafana reconciler's view of the world to
sibling controllers that run on their own schedule (e.g. the dashboard
controller, which only pushes dashboards while grafana is ready).

Overflow policy: coalesce-to-latest. Only the most recent ControllerState
matters to consumers, so the bus holds a single slot plus a sequence number.
publish() overwrites the slot and never waits on consumers. Each Subscription
remembers the last sequence it saw and get() returns the newest state once a
newer one exists, skipping any states published in between.
"""

# Standard
from dataclasses import dataclass, field
from typing import Optional, Tuple
import copy
import threading

# First Party
import alog

# Local
from . import config

log = alog.use_channel("EVENTS")


@dataclass(frozen=True)
class ControllerState:
    """Immutable snapshot of the state published at the end of a reconcile"""

    grafana_ready: bool = False
    dashboard_selectors: Tuple[dict, ...] = ()
    dashboard_namespace_selector: Optional[dict] = None
    admin_url: str = ""
    client_timeout: int = field(
        default_factory=lambda: config.default_client_timeout_seconds
    )

    def __post_init__(self):
        # Detach from the CR dicts the selectors were read from
        object.__setattr__(
            self,
            "dashboard_selectors",
            tuple(copy.deepcopy(list(self.dashboard_selectors or ()))),
        )
        object.__setattr__(
            self,
            "dashboard_namespace_selector",
            copy.deepcopy(self.dashboard_namespace_selector),
        )


class ControllerEventBus:
    """Single-slot, multi-consumer conduit for ControllerState values"""

    def __init__(self):
        self._condition = threading.Condition()
        self._latest = None
        self._sequence = 0

    def publish(self, state: ControllerState):
        """Replace the current state and wake all waiting subscribers"""
        with self._condition:
            self._latest = state
            self._sequence += 1
            log.debug2(
                "Published controller state #%d (ready=%s)",
                self._sequence,
                state.grafana_ready,
            )
            self._condition.notify_all()

    @property
    def latest(self) -> Optional[ControllerState]:
        with self._condition:
            return self._latest

    @property
    def sequence(self) -> int:
        """Total number of states published on this bus"""
        with self._condition:
            return self._sequence

    def subscribe(self) -> "Subscription":
        """Create a subscription that receives states published from now on"""
        return Subscription(self)

    ## Subscription Interface ##################################################

    def _wait_newer(
        self, seen: int, timeout: Optional[float]
    ) -> Tuple[int, Optional[ControllerState]]:
        with self._condition:
            self._condition.wait_for(lambda: self._sequence > seen, timeout=timeout)
            if self._sequence > seen:
                return self._sequence, self._latest
            return seen, None


class Subscription:
    """A consumer's cursor on a ControllerEventBus"""

    def __init__(self, bus: ControllerEventBus):
        self._bus = bus
        self._seen = bus.sequence

    def get(self, timeout: Optional[float] = None) -> Optional[ControllerState]:
        """Wait for a state newer than the last one returned. Returns None if
        the timeout expires first.
        """
        self._seen, state = self._bus._wait_newer(  # pylint: disable=protected-access
            self._seen, timeout
        )
        return state

    def get_nowait(self) -> Optional[ControllerState]:
        return self.get(timeout=0)
