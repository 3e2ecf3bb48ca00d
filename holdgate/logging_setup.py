from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s - %(message)s'


def setup_logging(settings) -> Path | None:
    """Configure console logging and, when LOG_FILE is set, a rotating file log.

    Returns the log file path if file logging is enabled.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    fmt = logging.Formatter(LOG_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)
    if not any(getattr(h, '_holdgate', False) for h in root.handlers):
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        console._holdgate = True
        root.addHandler(console)

    if not settings.log_file:
        return None

    log_path = Path(settings.log_file).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    # avoid duplicate handlers on reload
    if not any(getattr(h, 'baseFilename', '') == str(log_path.resolve()) for h in root.handlers):
        handler = logging.handlers.RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=3, encoding='utf-8')
        handler.setFormatter(fmt)
        handler.setLevel(level)
        root.addHandler(handler)

    for name in ('uvicorn', 'uvicorn.error', 'uvicorn.access', 'fastapi'):
        logging.getLogger(name).setLevel(level)

    return log_path
