"""
Status schemas - Pydantic models for the status API responses
"""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional


class HealthResponse(BaseModel):
    """Liveness of the process"""
    status: str = Field(description="\"healthy\", \"degraded\" or \"stopping\"")
    reason: Optional[str] = Field(None, description="Why the status is not healthy")
    timestamp: str = Field(description="ISO UTC timestamp")


class LeaderResponse(BaseModel):
    """Leader election view of this instance"""
    identity: str = Field(description="Identity this instance campaigns with")
    lease_name: str = Field(description="Name of the lease record")
    state: str = Field(description="CANDIDATE, LEADING or STOPPED")
    is_leader: bool
    leader: Optional[str] = Field(None, description="Last observed lease holder")
    leader_transitions: int = Field(0, description="Leadership changes recorded on the lease")
    stopping: bool = Field(False, description="Cancellation has fired")
    stop_reason: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "identity": "operator-0",
                "lease_name": "mysql-operator-titanium",
                "state": "LEADING",
                "is_leader": True,
                "leader": "operator-0",
                "leader_transitions": 3,
                "stopping": False,
                "stop_reason": None,
            }
        }


class ControllersResponse(BaseModel):
    """Registered control loops and their state"""
    count: int
    controllers: Dict[str, str] = Field(
        description="name -> pending, running, completed, failed or cancelled"
    )


class TaskSummaryResponse(BaseModel):
    summary: str = Field(description="Human-readable summary")
    total: int
    active: int
    failed: int
    cancelled: int


class TaskResponse(BaseModel):
    id: int
    category: str
    description: str
    created_at: str
    created_by: Optional[str] = None
    status: str
    error: Optional[str] = None


class TaskListResponse(BaseModel):
    count: int
    tasks: List[TaskResponse]
