from fastapi import APIRouter, Depends, HTTPException

from app.schemas.execution import ExecutionInfo, ExecutionList
from app.services.bridge_service import BridgeService, get_bridge_service

router = APIRouter()


@router.get("", response_model=ExecutionList)
async def list_executions(bridge: BridgeService = Depends(get_bridge_service)):
    """List running monitoring loops"""
    executions = [ExecutionInfo(**item) for item in bridge.list_executions()]
    return ExecutionList(executions=executions, total_count=len(executions))


@router.delete("/{execution_key}")
async def cancel_execution(execution_key: str, bridge: BridgeService = Depends(get_bridge_service)):
    """Stop a monitoring loop at its next poll boundary"""
    if not bridge.cancel(execution_key):
        raise HTTPException(status_code=404, detail=f"No running execution '{execution_key}'")
    return {"execution_key": execution_key, "status": "stopping"}
