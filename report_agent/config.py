from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Delte mapper
    upload_directory: str = "/var/company/upload"
    dashboard_directory: str = "/var/company/reporting"
    backup_directory: str = "/var/company/backup"

    # Runtime filer
    pid_file_path: str = "/var/run/company_daemon.pid"
    lock_file_path: str = "/var/run/company_daemon.lock"
    channel_path: str = "/var/run/company_daemon_pipe"

    # Rettigheder når mapperne ikke er låst
    upload_permissions: int = 0o777
    dashboard_permissions: int = 0o755

    # Daglig transfer + backup (lokal tid)
    transfer_hour: int = 1
    transfer_minute: int = 0

    # Upload deadline - filer ændret efter denne tid logges som for sene
    upload_deadline_hour: int = 23
    upload_deadline_minute: int = 30

    # Timing konfiguration
    tick_interval_seconds: float = 1.0
    monitor_interval_seconds: float = 5.0
    transfer_cycle_timeout_seconds: float = 600.0
    backup_cycle_timeout_seconds: float = 300.0

    # Worker pool
    max_workers: int = 2

    # Backup retention
    backup_max_age_days: int = 7

    # Rapporter
    report_extension: str = ".xml"
    departments: List[str] = ["Warehouse", "Manufacturing", "Sales", "Distribution"]

    # Logging konfiguration
    log_level: str = "INFO"
    log_file_path: str = "/var/log/company_daemon.log"
    change_log_path: str = "/var/log/company_changes.log"
    log_max_bytes: int = 10 * 1024 * 1024  # 10 MB før rotation
    log_backup_count: int = 5

    # Status API
    status_api_host: str = "127.0.0.1"
    status_api_port: int = 8000

    model_config = SettingsConfigDict(env_file="settings.env", extra="ignore")

    @property
    def log_directory(self) -> Path:
        """Returnerer log directory som Path objekt"""
        return Path(self.log_file_path).parent

    @property
    def managed_directories(self) -> List[str]:
        return [
            self.upload_directory,
            self.dashboard_directory,
            self.backup_directory,
        ]
