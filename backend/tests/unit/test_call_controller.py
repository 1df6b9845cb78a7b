"""
Tests for the device-side call controller state machine.
"""
import pytest
from unittest.mock import AsyncMock, Mock

from switchboard.client.call_controller import CallController, CallEvent, DeviceState

ALICE = 1
BOB = 2
CALL_SID = "CA1234567890"


@pytest.fixture
def api():
    return AsyncMock()


@pytest.fixture
def notifier():
    return Mock()


async def ringing_controller(user_id, api, notifier=None, call_sid=CALL_SID):
    controller = CallController(user_id, api, notifier)
    await controller.handle(CallEvent.REGISTERED)
    await controller.handle(CallEvent.INCOMING, {"callSid": call_sid, "from": "+15551234567", "to": "client:101"})
    return controller


class TestTransitions:
    """Test the transition table."""

    async def test_starts_unregistered(self, api):
        assert CallController(ALICE, api).state == DeviceState.UNREGISTERED

    async def test_incoming_call_rings(self, api):
        controller = await ringing_controller(ALICE, api)

        assert controller.state == DeviceState.RINGING
        assert controller.current_call.call_sid == CALL_SID
        assert controller.current_call.from_number == "+15551234567"
        assert controller.current_call.status == "ringing"
        assert controller.current_call.direction == "inbound"
        api.start_call.assert_not_awaited()

    async def test_accept_goes_active_and_writes_presence(self, api):
        controller = await ringing_controller(ALICE, api)

        assert await controller.handle(CallEvent.ACCEPT) is True

        assert controller.state == DeviceState.ACTIVE
        assert controller.current_call.status == "answered"
        api.start_call.assert_awaited_once()
        args, kwargs = api.start_call.call_args
        assert args == (ALICE,)
        assert kwargs["call_sid"] == CALL_SID
        assert kwargs["caller_number"] == "+15551234567"
        assert kwargs["direction"] == "inbound"

    async def test_reject_returns_to_registered_without_writes(self, api):
        controller = await ringing_controller(ALICE, api)

        await controller.handle(CallEvent.REJECT)

        assert controller.state == DeviceState.REGISTERED
        assert controller.current_call is None
        api.start_call.assert_not_awaited()
        api.end_call.assert_not_awaited()

    async def test_caller_hang_up_while_ringing_is_missed(self, api):
        controller = await ringing_controller(ALICE, api)

        await controller.handle(CallEvent.CANCEL)

        assert controller.state == DeviceState.REGISTERED
        assert controller.call_history[0].status == "missed"
        api.end_call.assert_not_awaited()

    async def test_disconnect_clears_presence(self, api):
        controller = await ringing_controller(ALICE, api)
        await controller.handle(CallEvent.ACCEPT)

        await controller.handle(CallEvent.DISCONNECT)

        assert controller.state == DeviceState.REGISTERED
        assert controller.current_call is None
        api.end_call.assert_awaited_once_with(ALICE)
        assert controller.call_history[0].status == "ended"

    async def test_device_error_discards_call_from_any_state(self, api, notifier):
        controller = await ringing_controller(ALICE, api, notifier)
        await controller.handle(CallEvent.ACCEPT)

        await controller.handle(CallEvent.DEVICE_ERROR, {"message": "token expired"})

        assert controller.state == DeviceState.UNREGISTERED
        assert controller.current_call is None
        notifier.assert_called_with("Phone error", "token expired")

    async def test_unregistered_drops_ringing_call(self, api):
        controller = await ringing_controller(ALICE, api)

        await controller.handle(CallEvent.UNREGISTERED)

        assert controller.state == DeviceState.UNREGISTERED
        assert controller.current_call is None

    async def test_events_without_a_transition_are_ignored(self, api):
        controller = CallController(ALICE, api)

        assert await controller.handle(CallEvent.ACCEPT) is False
        assert await controller.handle(CallEvent.DISCONNECT) is False
        assert controller.state == DeviceState.UNREGISTERED

    async def test_second_incoming_while_active_is_ignored(self, api):
        controller = await ringing_controller(ALICE, api)
        await controller.handle(CallEvent.ACCEPT)

        handled = await controller.handle(CallEvent.INCOMING, {"callSid": "CA-other", "from": "+1555"})

        assert handled is False
        assert controller.state == DeviceState.ACTIVE
        assert controller.current_call.call_sid == CALL_SID

    async def test_duplicate_accept_writes_once(self, api):
        controller = await ringing_controller(ALICE, api)

        await controller.handle(CallEvent.ACCEPT)
        await controller.handle(CallEvent.ACCEPT)

        api.start_call.assert_awaited_once()

    async def test_dial_goes_active_with_outbound_presence(self, api):
        controller = CallController(ALICE, api)
        await controller.handle(CallEvent.REGISTERED)

        await controller.dial("+15559876543", "CA-outbound")

        assert controller.state == DeviceState.ACTIVE
        assert controller.current_call.direction == "outbound"
        assert controller.call_history[0].to_number == "+15559876543"
        kwargs = api.start_call.call_args.kwargs
        assert kwargs["direction"] == "outbound"
        assert kwargs["caller_number"] == "+15559876543"

    async def test_call_history_is_newest_first(self, api):
        controller = await ringing_controller(ALICE, api, call_sid="CA-first")
        await controller.handle(CallEvent.REJECT)
        await controller.handle(CallEvent.INCOMING, {"callSid": "CA-second", "from": "+1555"})

        assert [call.call_sid for call in controller.call_history] == ["CA-second", "CA-first"]


class TestFailures:
    """Side-effect failures never escape the controller."""

    async def test_rest_failure_becomes_notification(self, api, notifier):
        api.start_call.side_effect = RuntimeError("network down")
        controller = await ringing_controller(ALICE, api, notifier)

        handled = await controller.handle(CallEvent.ACCEPT)

        assert handled is True
        assert controller.state == DeviceState.ACTIVE
        notifier.assert_called_with("Call error", "network down")

    async def test_end_call_failure_still_returns_to_registered(self, api, notifier):
        api.end_call.side_effect = RuntimeError("500")
        controller = await ringing_controller(ALICE, api, notifier)
        await controller.handle(CallEvent.ACCEPT)

        await controller.handle(CallEvent.DISCONNECT)

        assert controller.state == DeviceState.REGISTERED


class TestMalformedEvents:
    """Events missing the data their transition needs are ignored."""

    async def test_incoming_without_call_sid_keeps_registered(self, api, notifier):
        controller = CallController(ALICE, api, notifier)
        await controller.handle(CallEvent.REGISTERED)

        handled = await controller.handle(CallEvent.INCOMING, {"from": "+1555"})

        assert handled is False
        assert controller.state == DeviceState.REGISTERED
        assert controller.current_call is None
        assert controller.call_history == []

    async def test_accept_after_malformed_incoming_does_nothing(self, api, notifier):
        controller = CallController(ALICE, api, notifier)
        await controller.handle(CallEvent.REGISTERED)
        await controller.handle(CallEvent.INCOMING, {"from": "+1555"})

        assert await controller.handle_key("Enter") is False
        assert await controller.handle(CallEvent.ACCEPT) is False

        assert controller.state == DeviceState.REGISTERED
        api.start_call.assert_not_awaited()

    async def test_dial_without_call_sid_is_ignored(self, api):
        controller = CallController(ALICE, api)
        await controller.handle(CallEvent.REGISTERED)

        assert await controller.dial("+15559876543", "") is False
        assert controller.state == DeviceState.REGISTERED
        api.start_call.assert_not_awaited()

    async def test_accept_with_no_call_falls_back_to_registered(self, api):
        controller = await ringing_controller(ALICE, api)
        controller.current_call = None

        await controller.handle(CallEvent.ACCEPT)

        assert controller.state == DeviceState.REGISTERED
        api.start_call.assert_not_awaited()


class TestKeyboard:
    """Enter accepts and Escape rejects while ringing."""

    async def test_enter_accepts(self, api):
        controller = await ringing_controller(ALICE, api)

        assert await controller.handle_key("Enter") is True
        assert controller.state == DeviceState.ACTIVE

    async def test_escape_rejects(self, api):
        controller = await ringing_controller(ALICE, api)

        assert await controller.handle_key("Escape") is True
        assert controller.state == DeviceState.REGISTERED

    async def test_keys_do_nothing_outside_ringing(self, api):
        controller = CallController(ALICE, api)
        await controller.handle(CallEvent.REGISTERED)

        assert await controller.handle_key("Enter") is False
        assert controller.state == DeviceState.REGISTERED

    async def test_other_keys_are_ignored(self, api):
        controller = await ringing_controller(ALICE, api)

        assert await controller.handle_key("Space") is False
        assert controller.state == DeviceState.RINGING


class TestAnsweredElsewhere:
    """Racing call_answered broadcasts against local transitions."""

    @staticmethod
    def answered(by_user_id, call_sid=CALL_SID):
        return {
            "type": "call_answered",
            "callSid": call_sid,
            "answeredByUserId": by_user_id,
            "answeredByName": "Alice",
        }

    async def test_other_device_dismisses_its_prompt(self, api, notifier):
        bob = await ringing_controller(BOB, api, notifier)

        assert await bob.handle_realtime_message(self.answered(ALICE)) is True

        assert bob.state == DeviceState.REGISTERED
        assert bob.current_call is None
        api.start_call.assert_not_awaited()
        api.end_call.assert_not_awaited()
        notifier.assert_called_with("Call answered", "Answered by Alice")

    async def test_own_echo_is_ignored_after_self_answer(self, api):
        alice = await ringing_controller(ALICE, api)
        await alice.handle(CallEvent.ACCEPT)

        assert await alice.handle_realtime_message(self.answered(ALICE)) is False

        assert alice.state == DeviceState.ACTIVE
        api.start_call.assert_awaited_once()

    async def test_own_echo_arriving_before_local_accept_is_ignored(self, api):
        alice = await ringing_controller(ALICE, api)

        await alice.handle_realtime_message(self.answered(ALICE))
        await alice.handle(CallEvent.ACCEPT)

        assert alice.state == DeviceState.ACTIVE
        api.start_call.assert_awaited_once()

    async def test_race_between_two_devices(self):
        """A answers; the broadcast reaches both A and B. A stays active once, B dismisses."""
        alice_api, bob_api = AsyncMock(), AsyncMock()
        alice = await ringing_controller(ALICE, alice_api)
        bob = await ringing_controller(BOB, bob_api)

        await alice.handle(CallEvent.ACCEPT)
        broadcast = self.answered(ALICE)
        await alice.handle_realtime_message(broadcast)
        await bob.handle_realtime_message(broadcast)

        assert alice.state == DeviceState.ACTIVE
        alice_api.start_call.assert_awaited_once()
        assert bob.state == DeviceState.REGISTERED
        bob_api.start_call.assert_not_awaited()
        bob_api.end_call.assert_not_awaited()

    async def test_answer_for_a_different_call_is_ignored(self, api):
        bob = await ringing_controller(BOB, api)

        assert await bob.handle_realtime_message(self.answered(ALICE, call_sid="CA-other")) is False
        assert bob.state == DeviceState.RINGING

    async def test_answer_while_active_on_same_sid_is_ignored(self, api):
        bob = await ringing_controller(BOB, api)
        await bob.handle(CallEvent.ACCEPT)

        await bob.handle_realtime_message(self.answered(ALICE))

        assert bob.state == DeviceState.ACTIVE

    async def test_other_message_types_are_ignored(self, api):
        bob = await ringing_controller(BOB, api)

        assert await bob.handle_realtime_message({"type": "user_call_started"}) is False
        assert bob.state == DeviceState.RINGING
