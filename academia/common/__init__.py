"""
Common Components for Academia

This package contains infrastructure shared across the service:
1. Logging - Centralized logging configuration
2. Error Handling - Error taxonomy, retries and storage error conversion
3. Serialization - Conversion of domain objects to JSON-friendly data
4. Redis - Shared asyncio Redis client
5. Auth - Caller identity for the HTTP API
"""

# Initialize logging
from academia.common.logger import app_logger

__all__ = [
    'app_logger',
]
