"""
Authentication helpers.
"""

from academia.common.auth.dependencies import get_current_user_id

__all__ = ["get_current_user_id"]
