"""
logging_setup.py - Logging configuration shared by the Streamlit entry point and tools.

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

import logging
from config.settings import LOG_LEVEL, LOG_FILE


def configure_logging(level: str = LOG_LEVEL, log_file: str = LOG_FILE) -> None:
    """
    Configure root logging once with a UTF-8 file handler and console output.
    Streamlit reruns the entry script, so repeated calls are ignored.
    """
    root = logging.getLogger()
    if getattr(root, "_bat_monitor_configured", False):
        return

    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.insert(0, logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )
    root._bat_monitor_configured = True
