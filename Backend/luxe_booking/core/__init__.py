"""
Core module - configuration, database and response formatting.
"""
from .config import Settings, get_settings
from .db import AsyncSessionLocal, Base, build_engine, engine, get_session
from .responses import ErrorCodes, ErrorDetail, error_response

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "get_session",
    "Base",
    "build_engine",
    "engine",
    "AsyncSessionLocal",
    # Responses
    "ErrorDetail",
    "ErrorCodes",
    "error_response",
]
