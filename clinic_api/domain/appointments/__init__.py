"""
Appointments domain - booking requests, patient upsert and status changes.
"""

from .router import router

__all__ = ["router"]
