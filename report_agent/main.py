import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from .api import status
from .dependencies import get_daemon_controller
from .services.daemon_controller import DaemonController

# Global reference til background tasks
_background_tasks = []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup - initialize_daemon er allerede kørt af entry point
    controller = get_daemon_controller()

    # uvicorn ejer SIGTERM/SIGINT og stopper loopet via shutdown nedenfor
    controller.install_signal_handlers(shutdown_signals=False)

    controller_task = asyncio.create_task(controller.run())
    _background_tasks.append(controller_task)
    logging.info("DaemonController startet som background task")

    yield

    # Shutdown
    logging.info("Report Agent shutting down...")
    controller.stop()

    # Loopet afslutter det igangværende tick før det stopper
    if _background_tasks:
        await asyncio.gather(*_background_tasks, return_exceptions=True)
        _background_tasks.clear()

    logging.info("Alle background tasks stoppet")


app = FastAPI(
    title="Report Agent",
    description="Flytter afdelingsrapporter til dashboard og tager backup om natten",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(status.router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Report Agent er kørende"}


@app.get("/health")
async def health(controller: DaemonController = Depends(get_daemon_controller)):
    """Detaljeret health check."""
    return {
        "status": "healthy" if controller.is_running else "starting",
        "service": "report-agent",
        "state": controller.state.value,
    }
