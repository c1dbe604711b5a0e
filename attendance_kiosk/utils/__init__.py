"""
Utility modules package.
"""

from .timing import format_uptime, utcnow

__all__ = [
    'format_uptime',
    'utcnow',
]
