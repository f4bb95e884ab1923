from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

LOG_DIR = Path("logs")
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(log_dir: Union[str, Path, None] = LOG_DIR, level: int = logging.INFO) -> None:
    """Log to stderr and, unless ``log_dir`` is None, to ``<log_dir>/sdrstream.log``."""
    handlers = [logging.StreamHandler()]
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.insert(0, logging.FileHandler(log_dir / "sdrstream.log"))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
