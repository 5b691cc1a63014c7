from manifest.models.base import Base
from manifest.models.focus_session import FocusSession
from manifest.models.timer_pause import TimerPause
from manifest.models.timer_stop import TimerStop
from manifest.models.user import User

__all__ = [
    "Base",
    "FocusSession",
    "TimerPause",
    "TimerStop",
    "User",
]
