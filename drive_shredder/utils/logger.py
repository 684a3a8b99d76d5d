"""
Logging configuration for the drive shredder
"""

import logging
from pathlib import Path
from datetime import datetime

WIPE_THREAD_PREFIX = "wipe-"

class WipeThreadFilter(logging.Filter):
    """Keep wipe-task records off the console; they still reach the log file"""

    def filter(self, record):
        return not record.threadName.startswith(WIPE_THREAD_PREFIX)

def setup_logger(log_level=logging.INFO, log_dir="logs", log_file=None):
    """
    Setup logging configuration for the application

    Args:
        log_level: Logging level (default: INFO)
        log_dir: Directory for the log file (default: ./logs)
        log_file: Optional log file path (default: auto-generated)
    """

    # Create logs directory if it doesn't exist
    logs_dir = Path(log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    # Generate log file name if not provided
    if log_file is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = logs_dir / f"drive_shredder_{timestamp}.log"

    # Configure logging format
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    date_format = '%Y-%m-%d %H:%M:%S'

    # The console only gets warnings from the main thread; the progress
    # monitor owns the terminal while wipe tasks run
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.addFilter(WipeThreadFilter())

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt=date_format,
        handlers=[
            logging.FileHandler(log_file),
            console_handler
        ],
        force=True
    )

    # reportlab is chatty at DEBUG while building certificates
    logging.getLogger('reportlab').setLevel(logging.WARNING)

    # Log startup message
    logger = logging.getLogger(__name__)
    logger.info(f"Drive Shredder logging initialized - Log file: {log_file}")

    return logger
