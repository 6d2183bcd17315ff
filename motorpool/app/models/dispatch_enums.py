"""
Booking and driver enumerations.
"""

import enum


class BookingStatus(str, enum.Enum):
    """Booking status enumeration."""
    REQUESTED = "REQUESTED"  # Submitted by requester
    PENDING_RETRO = "PENDING_RETRO"  # Backdated entry made by an admin
    APPROVED = "APPROVED"  # Approved, awaiting assignment
    ASSIGNED = "ASSIGNED"  # Driver reserved, acceptance link sent
    ACCEPTED = "ACCEPTED"  # Driver accepted the job
    STARTED = "STARTED"  # Start mileage recorded
    COMPLETED = "COMPLETED"  # End mileage recorded
    CANCELLED = "CANCELLED"  # Cancelled by requester or admin
    REJECTED = "REJECTED"  # Rejected by admin


TERMINAL_STATUSES = frozenset({
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
    BookingStatus.REJECTED,
})


class DriverStatus(str, enum.Enum):
    """Driver availability enumeration."""
    AVAILABLE = "AVAILABLE"  # Can be offered the next job
    BUSY = "BUSY"  # Reserved by an assignment
    OFF = "OFF"  # Off duty, skipped by the queue


class NotificationStatus(str, enum.Enum):
    """Outbound notification delivery state."""
    PENDING = "PENDING"
    SENDING = "SENDING"  # Claimed by a dispatcher run
    SENT = "SENT"
    FAILED = "FAILED"
