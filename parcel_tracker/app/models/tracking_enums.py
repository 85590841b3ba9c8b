"""
Tracking State Enumeration.
"""

import enum


class TrackingState(str, enum.Enum):
    """
    Tracking state enumeration.

    State flow:
        ACTIVE → DELIVERED (terminal)
        Stopping deletes the record, so there is no stored STOPPED state.
    """
    ACTIVE = "ACTIVE"
    DELIVERED = "DELIVERED"
