"""
Models package - Data models for the controller supervisor
"""

from .enums import ElectionState, ExitCode, ResourceAction, LogLevel, LogCategory
from .lease import LeaseRecord
from .config import OperatorConfig, LeaderElectionConfig, ApiConfig, LoggingConfig

__all__ = [
    'ElectionState',
    'ExitCode',
    'ResourceAction',
    'LogLevel',
    'LogCategory',
    'LeaseRecord',
    'OperatorConfig',
    'LeaderElectionConfig',
    'ApiConfig',
    'LoggingConfig',
]
