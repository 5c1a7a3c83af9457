"""
appointment_engine - staff availability and conflict-free booking.
"""

__version__ = "0.1.0"
