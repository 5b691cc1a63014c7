from manifest.client.api import TimerApiError, TimerClient
from manifest.client.focus_timer import FocusTimer, TimerState, timeline

__all__ = [
    "FocusTimer",
    "TimerApiError",
    "TimerClient",
    "TimerState",
    "timeline",
]
