"""
Scheduling domain - doctor weekly schedules and bookable slot generation.

- time_calculator.py: "HH:MM" arithmetic, weekday mapping, slot grid
- availability_service.py: slots for a doctor and date (read-only)
- schedule_service.py: admin upsert / bulk replace / deactivate
"""

from .router import router

__all__ = ["router"]
