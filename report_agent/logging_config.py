import logging
import logging.handlers
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from .config import Settings

CHANGE_LOGGER_NAME = "report_agent.changes"

FILE_FORMAT = (
    "%(asctime)s - %(levelname)s - "
    "%(filename)s:%(lineno)d in %(funcName)s() - "
    "[pid %(process)d] %(message)s"
)
CHANGE_FORMAT = "[%(asctime)s] %(message)s"
CHANGE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _rotating_handler(path: str, settings: Settings) -> logging.Handler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )


def _configure_change_logger(settings: Settings) -> None:
    change_handler = _rotating_handler(settings.change_log_path, settings)
    change_handler.setFormatter(
        logging.Formatter(CHANGE_FORMAT, datefmt=CHANGE_DATE_FORMAT)
    )

    change_logger = logging.getLogger(CHANGE_LOGGER_NAME)
    change_logger.handlers.clear()
    change_logger.addHandler(change_handler)
    change_logger.setLevel(logging.INFO)
    # Change log holdes adskilt fra operation log
    change_logger.propagate = False


def setup_logging(settings: Settings) -> None:
    # Create Rich console handler for beautiful output
    console = Console(width=120)
    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_level=True,
        show_path=True,
        markup=True,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
    )
    rich_handler.setLevel(settings.log_level)

    # Operation + error log med størrelses-baseret rotation
    file_handler = _rotating_handler(settings.log_file_path, settings)
    file_handler.setLevel(settings.log_level)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))

    # Configure root logger (catches everything)
    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level)

    # Clear any existing handlers to avoid duplicates
    root_logger.handlers.clear()
    root_logger.addHandler(rich_handler)
    root_logger.addHandler(file_handler)

    _configure_change_logger(settings)

    # Silence noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logging.info(
        f"[bold green]Logging initialized[/] - "
        f"File: [cyan]{settings.log_file_path}[/], "
        f"Changes: [cyan]{settings.change_log_path}[/], "
        f"Level: [yellow]{settings.log_level}[/], "
        f"Rotation: [blue]{settings.log_max_bytes // (1024 * 1024)}MB x {settings.log_backup_count}[/]"
    )


def setup_worker_logging(settings: Settings) -> None:
    """Pool initializer: worker processer logger kun til filerne."""
    file_handler = _rotating_handler(settings.log_file_path, settings)
    file_handler.setLevel(settings.log_level)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(file_handler)

    _configure_change_logger(settings)


def log_file_change(username: str, filename: str, action: str) -> None:
    logging.getLogger(CHANGE_LOGGER_NAME).info(
        f"User: {username}, File: {filename}, Action: {action}"
    )
