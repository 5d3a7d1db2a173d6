"""Operational logging for pipeline runs."""

from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def setup_operational_logger(
    log_dir: str, run_id: str, *, level: str = "INFO"
) -> tuple[logging.Logger, str]:
    """
    Configure a logger that writes an operational log for traceability.
    Logs go to both stderr and a UTF-8 file `<run_id>_oplog.log` under `log_dir`.
    """
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, f"{run_id}_oplog.log")

    logger = logging.getLogger(f"readme_cicd.{run_id}")
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(logging.getLevelName(level.upper()))
    stream_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(stream_handler)
    logger.propagate = False

    logger.info("Operational logging initialized for run %s", run_id)
    logger.debug("Operational log file: %s", log_file)
    return logger, log_file


def close_logger(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
