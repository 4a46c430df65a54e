"""
Handles configuration of logging for the application process.
"""
import logging
import sys
import os
from pathlib import Path
from datetime import datetime

# Define a consistent log directory
LOG_DIR = Path("./logs")
MAX_LOG_FILES = 20
LOGGER_NAME = "bookpress"
CONSOLE_LOG_FORMAT = "%(levelname)s: %(message)s"
FILE_LOG_FORMAT = (
    "%(asctime)s [%(threadName)s] %(levelname)s - [%(module)s:%(lineno)d] - %(message)s"
)


def setup_main_logger(console_level=logging.WARNING, log_dir: Path | None = LOG_DIR):
    """
    Configures the application logger.

    This logger will handle console output (at the specified level)
    and file output (at DEBUG level) for a new, unique log file.
    It also performs log rotation. Pass log_dir=None to skip file logging.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)  # Capture all levels

    # Avoid adding duplicate handlers
    if logger.hasHandlers():
        logger.handlers.clear()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_LOG_FORMAT))
    logger.addHandler(console_handler)

    if log_dir is None:
        return logger

    # --- File Handler (Rotation and New File) ---
    try:
        log_dir.mkdir(exist_ok=True)

        # 1. Rotate old logs, oldest first
        logs = sorted(
            [p for p in log_dir.glob("bookpress_*.log") if p.is_file()],
            key=os.path.getmtime,
        )

        files_to_remove = len(logs) - (MAX_LOG_FILES - 1)
        if files_to_remove > 0:
            for log_file in logs[:files_to_remove]:
                try:
                    log_file.unlink()
                except OSError:
                    pass  # locked files are left for the next run

        # 2. Create new log file for this run
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        new_log_path = log_dir / f"bookpress_{timestamp}.log"

        file_handler = logging.FileHandler(new_log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)  # Always log everything to file
        file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(file_handler)

        logger.info(
            "Main logger initialized. Console level: %s, File level: DEBUG. Logging to: %s",
            logging.getLevelName(console_level),
            new_log_path,
        )
    except OSError:
        logger.error("Failed to set up file logging.", exc_info=True)

    return logger
