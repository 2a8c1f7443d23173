import logging
import sys
from pathlib import Path
from typing import List, Optional

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


def setup_logging(
    log_dir: Path,
    debug: bool = False,
    log_path: Optional[Path] = None,
    console: bool = False,
) -> logging.Logger:
    """
    Configure logging for the media queue service.

    Writes to mediaqueue.log in ``log_dir`` (or ``log_path`` when given) and,
    with ``console=True``, mirrors records to stderr so ``serve`` shows
    queue activity in the foreground.

    Args:
        log_dir: Directory where mediaqueue.log is written
        debug: If True, enable DEBUG level logging (per-broadcast traces)
        log_path: Optional path to log file (overrides log_dir)
        console: Also log to stderr
    """
    log_file = Path(log_path) if log_path else (log_dir / "mediaqueue.log")
    log_file.parent.mkdir(parents=True, exist_ok=True)

    handlers: List[logging.Handler] = [logging.FileHandler(log_file)]
    if console:
        handlers.append(logging.StreamHandler(sys.stderr))

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,  # replace handlers from any earlier call
    )

    logger = logging.getLogger("mediaqueue")
    logger.info("Logging initialized: %s (debug=%s)", log_file, "ON" if debug else "OFF")
    return logger
