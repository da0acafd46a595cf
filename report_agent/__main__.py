import logging
import sys

import uvicorn

from .core.exceptions import AlreadyRunningError
from .daemon import cleanup_daemon, initialize_daemon
from .dependencies import get_settings
from .logging_config import setup_logging

EXIT_OK = 0
EXIT_STARTUP_FAILURE = 1


def main() -> int:
    settings = get_settings()
    setup_logging(settings)

    logging.info("Report Agent starting up...")
    logging.info(f"Upload directory: {settings.upload_directory}")
    logging.info(f"Dashboard directory: {settings.dashboard_directory}")
    logging.info(f"Backup directory: {settings.backup_directory}")

    try:
        initialize_daemon(settings)
    except AlreadyRunningError as e:
        logging.error(str(e))
        return EXIT_STARTUP_FAILURE
    except OSError as e:
        logging.error(f"Daemon initialization failed: {e}")
        cleanup_daemon()
        return EXIT_STARTUP_FAILURE

    try:
        uvicorn.run(
            "report_agent.main:app",
            host=settings.status_api_host,
            port=settings.status_api_port,
            reload=False,
            log_level=settings.log_level.lower(),
            log_config=None,
        )
    finally:
        cleanup_daemon()

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
