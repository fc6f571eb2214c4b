"""
bookable - appointment availability against an external calendar.
"""

__version__ = "0.1.0"
