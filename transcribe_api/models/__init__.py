"""
Database models
"""

from .usage_log import UsageLog

__all__ = ["UsageLog"]
