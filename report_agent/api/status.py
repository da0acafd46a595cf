import logging

from fastapi import APIRouter, Depends

from ..core.daemon_flags import DaemonFlags
from ..dependencies import get_daemon_controller, get_daemon_flags
from ..models import DaemonStatus
from ..services.daemon_controller import DaemonController

router = APIRouter(prefix="/api", tags=["status"])


@router.get("/status", response_model=DaemonStatus)
async def get_status(
    controller: DaemonController = Depends(get_daemon_controller),
) -> DaemonStatus:
    """Current controller state, lock state, pending requests and recent changes."""
    return controller.get_status()


@router.post("/actions/backup")
async def request_backup(flags: DaemonFlags = Depends(get_daemon_flags)):
    """Same as SIGUSR1: run a backup cycle on the next tick."""
    logging.info("Backup requested via API", extra={"operation": "api_request_backup"})
    flags.request_backup()
    return {"success": True, "pending": flags.as_dict()}


@router.post("/actions/transfer")
async def request_transfer(flags: DaemonFlags = Depends(get_daemon_flags)):
    """Same as SIGUSR2: run a transfer + backup cycle on the next tick."""
    logging.info("Transfer requested via API", extra={"operation": "api_request_transfer"})
    flags.request_transfer()
    return {"success": True, "pending": flags.as_dict()}
