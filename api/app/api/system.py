from fastapi import APIRouter, Depends

from app.config import settings
from app.services.bridge_service import BridgeService, get_bridge_service

router = APIRouter()


@router.get("/config")
async def get_system_config(bridge: BridgeService = Depends(get_bridge_service)):
    """Get the effective monitor configuration"""
    monitor_config = bridge.monitor.config
    return {
        "chat_transport": settings.chat_transport,
        "poll_steps": [list(step) for step in monitor_config.poll_steps],
        "poll_max_interval": monitor_config.poll_max_interval,
        "stability_interval": monitor_config.stability_interval,
        "stability_window": monitor_config.stability_window,
        "status_update_interval": monitor_config.status_update_interval,
        "takeover_grace_seconds": monitor_config.takeover_grace_seconds,
        "max_chunk_length": monitor_config.max_chunk_length,
        "idle_rule": monitor_config.idle_rule,
        "busy_banners": monitor_config.busy_banners,
        "mapping_cleanup_interval_minutes": settings.mapping_cleanup_interval_minutes,
        "mapping_max_inactive_minutes": settings.mapping_max_inactive_minutes,
        "version": "1.0.0"
    }
