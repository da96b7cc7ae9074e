import json
import logging
import os
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from typing import Optional

# Id of the polling cycle currently running, stamped on every record
CYCLE_ID_CTX: ContextVar[Optional[str]] = ContextVar("cycle_id", default=None)

LOG_FILE_NAME = "monitor.log"


class CycleIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.cycle_id = CYCLE_ID_CTX.get()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        base = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "cycle_id": getattr(record, "cycle_id", None),
        }
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False)


def setup_logging(level: str = "INFO", fmt: str = "text", log_dir: Optional[str] = None) -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())
    # Clear existing handlers to avoid duplicate logs in reloads
    root.handlers = []
    if fmt.lower() == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - [%(cycle_id)s] %(message)s")

    ch = logging.StreamHandler()
    ch.setFormatter(formatter)
    ch.addFilter(CycleIdFilter())
    root.addHandler(ch)

    if log_dir:
        # Rotating file handler (5 MB, keep 3 backups)
        try:
            os.makedirs(log_dir, exist_ok=True)
            fh = RotatingFileHandler(os.path.join(log_dir, LOG_FILE_NAME), maxBytes=5 * 1024 * 1024, backupCount=3)
            fh.setFormatter(formatter)
            fh.addFilter(CycleIdFilter())
            root.addHandler(fh)
        except OSError:
            root.warning("Could not attach rotating file handler; continuing with console only")


def log_config(settings) -> None:
    """Log the effective configuration"""
    logging.info("=== Momentum Terrain Monitor configuration ===")
    for key, value in settings.public_dict().items():
        logging.info("%s: %s", key, value)
    logging.info("==============================================")
