import logging
import os

from pydantic import BaseModel

DEFAULT_OLLAMA_BASE = "http://localhost:11434"


class Settings(BaseModel):
    """Runtime configuration for a tarsier deployment.

    Settings are built once at startup and handed to the provider, store
    and runner explicitly. Nothing in the core reads the environment
    on its own.

    Args:
        ollama_base_url: Root URL of the Ollama server.
        request_timeout: Seconds before a backend request times out.
        max_iterations: Backend round-trips allowed per call.
        db_path: Path of the SQLite transcript database.
        log_file: File that ``configure_logging`` writes to, or ``None``.
    """

    ollama_base_url: str = DEFAULT_OLLAMA_BASE
    request_timeout: float = 600.0
    max_iterations: int = 10
    db_path: str = "tarsier.db"
    log_file: str | None = "tarsier.log"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``OLLAMA_BASE_URL`` and ``TARSIER_*``."""
        values = {}
        if base := os.getenv("OLLAMA_BASE_URL"):
            values["ollama_base_url"] = base
        if timeout := os.getenv("TARSIER_TIMEOUT"):
            values["request_timeout"] = timeout
        if max_iterations := os.getenv("TARSIER_MAX_ITERATIONS"):
            values["max_iterations"] = max_iterations
        if db_path := os.getenv("TARSIER_DB_PATH"):
            values["db_path"] = db_path
        if "TARSIER_LOG_FILE" in os.environ:
            values["log_file"] = os.environ["TARSIER_LOG_FILE"] or None
        return cls.model_validate(values)


def configure_logging(settings: Settings, level: int = logging.INFO) -> None:
    """Install the process-wide log format. Call once from an entry point."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        handlers.insert(0, logging.FileHandler(settings.log_file))
    logging.basicConfig(
        level=level,
        format='%(asctime)s:%(name)s:%(levelname)s:%(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers,
    )
