from pydantic import BaseModel, Field
from typing import List


class ThreadMessage(BaseModel):
    """Request schema for a message posted in a connected thread"""
    text: str = Field(..., min_length=1, description="Input to send to the tmux session")


class ExecutionAccepted(BaseModel):
    """Response schema for a started monitoring loop"""
    execution_key: str
    tmux_session: str
    status: str = "monitoring"


class ExecutionInfo(BaseModel):
    """Schema for one running monitoring loop"""
    execution_key: str
    session: str
    channel_id: str
    thread_key: str
    elapsed_seconds: float
    messages_sent: int


class ExecutionList(BaseModel):
    executions: List[ExecutionInfo]
    total_count: int
