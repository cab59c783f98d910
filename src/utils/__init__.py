"""
Utility functions for the controller supervisor
"""

from .logger import get_logger, get_category_logger, configure_logger
from .enum_helper import EnumHelper

__all__ = [
    'get_logger',
    'get_category_logger',
    'configure_logger',
    'EnumHelper',
]
