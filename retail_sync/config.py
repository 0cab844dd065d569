import logging
import os

from pydantic import BaseModel

from retail_sync.connectivity import ConnectivityMonitor
from retail_sync.coordinator import SubmissionCoordinator
from retail_sync.db import PendingSubmissionStore
from retail_sync.utils.supabase import SupabaseClient

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class Settings(BaseModel):
    database_url: str | None = None
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    celery_broker_url: str = "redis://redis:6379/0"
    celery_result_backend: str = "redis://redis:6379/0"
    http_timeout: float = 15.0
    connectivity_probe_url: str | None = None
    connectivity_check_interval: float = 30.0
    log_file: str = "retail_sync_worker.log"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        supabase_url = env.get("SUPABASE_URL")
        probe_url = env.get("CONNECTIVITY_PROBE_URL")
        if not probe_url and supabase_url:
            probe_url = f"{supabase_url.rstrip('/')}/rest/v1/"
        broker = env.get("CELERY_BROKER_URL", "redis://redis:6379/0")
        return cls(
            database_url=env.get("DATABASE_URL"),
            supabase_url=supabase_url,
            supabase_anon_key=env.get("SUPABASE_ANON_KEY"),
            celery_broker_url=broker,
            celery_result_backend=env.get("CELERY_RESULT_BACKEND", broker),
            http_timeout=float(env.get("HTTP_TIMEOUT", 15.0)),
            connectivity_probe_url=probe_url,
            connectivity_check_interval=float(env.get("CONNECTIVITY_CHECK_INTERVAL", 30.0)),
            log_file=env.get("LOG_FILE", "retail_sync_worker.log"),
            log_level=env.get("LOG_LEVEL", "INFO"),
        )


def configure_logging(settings: Settings):
    logging.basicConfig(
        level=settings.log_level.upper(),
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(settings.log_file),
            logging.StreamHandler()
        ]
    )


def build_coordinator(settings: Settings, pool, connectivity: ConnectivityMonitor | None = None) -> SubmissionCoordinator:
    """Wires store, remote client and connectivity monitor together."""
    remote = SupabaseClient(settings.supabase_url, settings.supabase_anon_key, timeout=settings.http_timeout)
    if connectivity is None:
        connectivity = ConnectivityMonitor(settings.connectivity_probe_url)
    return SubmissionCoordinator(PendingSubmissionStore(pool), remote, connectivity)
