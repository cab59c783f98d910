"""
Status API

Read-only HTTP view of the operator: health, leader election state,
control loops and tracked tasks.

Structure:
- routes/  : Endpoint handlers
- schemas/ : Pydantic response schemas
"""

from api.main import create_app

__all__ = ["create_app"]
