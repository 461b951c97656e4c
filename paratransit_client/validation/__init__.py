"""Validation module - temporal booking and cancellation rules."""

from .booking_rules import BookingPolicy, validate_booking_window, validate_cancellation

__all__ = ["BookingPolicy", "validate_booking_window", "validate_cancellation"]
