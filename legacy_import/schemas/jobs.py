"""
Pydantic schemas for the /api/v1/jobs endpoints.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class JobStatus(BaseModel):
    job_id: str
    session_id: str
    status: str
    ended_at: Optional[datetime] = None
    error_message: Optional[str] = None
    result: Optional[Any] = None


class QueueStats(BaseModel):
    queue_name: str
    queued: int
    active: int
    reserved: int
    workers: int
