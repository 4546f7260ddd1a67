"""Injectable time source. Tests override get_clock to freeze or advance time."""

from datetime import datetime
from typing import Callable

Clock = Callable[[], datetime]


def get_clock() -> Clock:
    """FastAPI dependency returning the current-time callable (local clinic time)"""
    return datetime.now
