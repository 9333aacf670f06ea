"""
salonbooking - salon appointment slot availability and conflict-safe booking.
"""

__version__ = "0.1.0"
