"""Backend utilities"""
from .auth import get_current_user, create_access_token
from .logger import setup_logging, get_logger

__all__ = ["get_current_user", "create_access_token", "setup_logging", "get_logger"]
