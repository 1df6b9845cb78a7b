from .call_controller import CallController, CallEvent, DeviceState, IncomingCall
from .api_client import SwitchboardClient
from .realtime import RealtimeListener, backoff_delay
