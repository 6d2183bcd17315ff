"""
User roles enumeration.

Defines the role types for the motor pool dispatch system.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.
    
    Roles:
        ADMIN: Dispatch office staff, approves and assigns trips
        REQUESTER: Staff member submitting trip requests (default role)
        DRIVER: Fleet operator account bound to a driver record
    """
    ADMIN = "ADMIN"
    REQUESTER = "REQUESTER"
    DRIVER = "DRIVER"
