# backend/switchboard/client/call_controller.py
"""
Device-side call controller.

An explicit state machine driven by two asynchronous sources that interleave
freely: callbacks from the voice device and frames from the realtime channel.
Every transition is looked up in ``TRANSITIONS``; an event with no entry for
the current state, or without the payload keys it needs, is ignored. A
transition moves the state first and then runs at most one side effect, so a
racing event always sees the new state.

Side effects never escape: REST failures become notifications and the
state the transition moved to is kept.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List, Callable, Tuple
import logging

logger = logging.getLogger(__name__)


class DeviceState(str, Enum):
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    RINGING = "ringing"
    ACTIVE = "active"


class CallEvent(str, Enum):
    REGISTERED = "registered"
    UNREGISTERED = "unregistered"
    DEVICE_ERROR = "device_error"
    INCOMING = "incoming"
    ACCEPT = "accept"
    REJECT = "reject"
    CANCEL = "cancel"
    ANSWERED_ELSEWHERE = "answered_elsewhere"
    DISCONNECT = "disconnect"
    DIAL = "dial"


@dataclass
class IncomingCall:
    call_sid: str
    from_number: str
    to_number: str
    direction: str = "inbound"
    status: str = "ringing"
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Notifier = Callable[[str, str], None]


# (state, event) -> (next state, side effect method name or None)
TRANSITIONS: Dict[Tuple[DeviceState, CallEvent], Tuple[DeviceState, Optional[str]]] = {
    (DeviceState.UNREGISTERED, CallEvent.REGISTERED): (DeviceState.REGISTERED, "_on_registered"),

    (DeviceState.REGISTERED, CallEvent.INCOMING): (DeviceState.RINGING, "_on_incoming"),
    (DeviceState.REGISTERED, CallEvent.DIAL): (DeviceState.ACTIVE, "_on_dial"),

    (DeviceState.RINGING, CallEvent.ACCEPT): (DeviceState.ACTIVE, "_on_accept"),
    (DeviceState.RINGING, CallEvent.REJECT): (DeviceState.REGISTERED, "_on_reject"),
    (DeviceState.RINGING, CallEvent.CANCEL): (DeviceState.REGISTERED, "_on_cancel"),
    (DeviceState.RINGING, CallEvent.ANSWERED_ELSEWHERE): (DeviceState.REGISTERED, "_on_answered_elsewhere"),

    (DeviceState.ACTIVE, CallEvent.DISCONNECT): (DeviceState.REGISTERED, "_on_disconnect"),

    (DeviceState.UNREGISTERED, CallEvent.DEVICE_ERROR): (DeviceState.UNREGISTERED, "_on_device_error"),
}
# Losing the device discards any call from every registered state
for _state in (DeviceState.REGISTERED, DeviceState.RINGING, DeviceState.ACTIVE):
    TRANSITIONS[(_state, CallEvent.UNREGISTERED)] = (DeviceState.UNREGISTERED, "_on_unregistered")
    TRANSITIONS[(_state, CallEvent.DEVICE_ERROR)] = (DeviceState.UNREGISTERED, "_on_device_error")


# Payload keys an event must carry before its transition may run
REQUIRED_FIELDS: Dict[CallEvent, Tuple[str, ...]] = {
    CallEvent.INCOMING: ("callSid",),
    CallEvent.DIAL: ("callSid", "to"),
}


def log_notifier(title: str, message: str) -> None:
    logger.info(f"{title}: {message}")


class CallController:
    """State machine for one user's voice device"""

    TRANSITIONS = TRANSITIONS

    KEY_BINDINGS = {
        "Enter": CallEvent.ACCEPT,
        "Escape": CallEvent.REJECT,
    }

    def __init__(self, user_id: int, api, notifier: Optional[Notifier] = None):
        self.user_id = user_id
        self.api = api
        self.notify = notifier or log_notifier
        self.state = DeviceState.UNREGISTERED
        self.current_call: Optional[IncomingCall] = None
        self.call_history: List[IncomingCall] = []

    async def handle(self, event: CallEvent, payload: Optional[Dict[str, Any]] = None) -> bool:
        """Apply one event. Returns False when the event is ignored in the current state."""
        transition = self.TRANSITIONS.get((self.state, event))
        if transition is None:
            logger.debug(f"Ignoring {event.value} in state {self.state.value}")
            return False

        payload = payload or {}
        missing = [key for key in REQUIRED_FIELDS.get(event, ()) if not payload.get(key)]
        if missing:
            logger.warning(f"Ignoring {event.value} without {', '.join(missing)}")
            return False

        next_state, effect = transition
        previous = self.state
        self.state = next_state
        logger.debug(f"{previous.value} --{event.value}--> {next_state.value}")

        if effect:
            try:
                await getattr(self, effect)(payload)
            except Exception as e:
                logger.error(f"Side effect of {event.value} failed: {e}")
                self.notify("Call error", str(e))
        return True

    async def handle_key(self, key: str) -> bool:
        """Keyboard shortcuts for the incoming-call prompt."""
        if self.state != DeviceState.RINGING:
            return False
        event = self.KEY_BINDINGS.get(key)
        if event is None:
            return False
        return await self.handle(event)

    async def handle_realtime_message(self, message: Dict[str, Any]) -> bool:
        """Feed a realtime frame; only ``call_answered`` affects the call state."""
        if message.get("type") != "call_answered":
            return False

        # Our own answer echoed back: this device already moved itself
        if message.get("answeredByUserId") == self.user_id:
            return False
        if self.current_call is None or message.get("callSid") != self.current_call.call_sid:
            return False

        return await self.handle(CallEvent.ANSWERED_ELSEWHERE, message)

    async def dial(self, to_number: str, call_sid: str) -> bool:
        return await self.handle(CallEvent.DIAL, {"to": to_number, "callSid": call_sid})

    # Side effects

    async def _on_registered(self, payload: Dict[str, Any]):
        self.notify("Phone ready", "You can now receive calls")

    async def _on_incoming(self, payload: Dict[str, Any]):
        call = IncomingCall(
            call_sid=payload["callSid"],
            from_number=payload.get("from") or "Unknown",
            to_number=payload.get("to") or "",
        )
        self.current_call = call
        self.call_history.insert(0, call)

    async def _on_accept(self, payload: Dict[str, Any]):
        call = self.current_call
        if call is None:
            # Nothing to answer; fall back instead of sitting in ACTIVE without a call
            self.state = DeviceState.REGISTERED
            return
        call.status = "answered"
        call.started_at = datetime.now(timezone.utc)
        await self.api.start_call(
            self.user_id,
            call_sid=call.call_sid,
            caller_number=call.from_number,
            direction=call.direction,
            started_at=call.started_at
        )

    async def _on_reject(self, payload: Dict[str, Any]):
        self._discard_call("rejected")
        self.notify("Call rejected", "Incoming call was rejected")

    async def _on_cancel(self, payload: Dict[str, Any]):
        self._discard_call("missed")

    async def _on_answered_elsewhere(self, payload: Dict[str, Any]):
        self._discard_call("answered_elsewhere")
        name = payload.get("answeredByName") or "another user"
        self.notify("Call answered", f"Answered by {name}")

    async def _on_dial(self, payload: Dict[str, Any]):
        call = IncomingCall(
            call_sid=payload["callSid"],
            from_number="",
            to_number=payload["to"],
            direction="outbound",
            status="answered",
        )
        self.current_call = call
        self.call_history.insert(0, call)
        await self.api.start_call(
            self.user_id,
            call_sid=call.call_sid,
            caller_number=call.to_number,
            direction=call.direction,
            started_at=call.started_at
        )

    async def _on_disconnect(self, payload: Dict[str, Any]):
        self._discard_call("ended")
        await self.api.end_call(self.user_id)

    async def _on_unregistered(self, payload: Dict[str, Any]):
        self._discard_call("ended")

    async def _on_device_error(self, payload: Dict[str, Any]):
        self._discard_call("ended")
        self.notify("Phone error", payload.get("message") or "The voice device reported an error")

    def _discard_call(self, status: str):
        if self.current_call is not None:
            self.current_call.status = status
        self.current_call = None
