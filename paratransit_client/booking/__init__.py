"""Booking module - multi-step booking orchestration"""

from .orchestrator import BookingOrchestrator

__all__ = ["BookingOrchestrator"]
