from .events import EventName, EventSet, build
from .resolver import resolve
from .countdown import format_countdown, format_state
from .codec import decode, encode
