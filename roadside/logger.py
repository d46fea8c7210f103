"""
Process-wide JSON logging

The "roadside" logger is configured once per process: console output at
LOG_LEVEL, plus roadside.log (INFO) and errors.log (ERROR) under LOG_DIR.
An empty LOG_DIR keeps output on the console. get_logger(name) hands out
children of it, so each record names the module area that emitted it.
"""

import json
import logging
import os
import threading
from pathlib import Path

ROOT_LOGGER = "roadside"

RECORD_FIELDS = {
    "timestamp": "asctime",
    "level": "levelname",
    "logger": "name",
    "module": "module",
    "function": "funcName",
    "line": "lineno",
    "message": "message",
}


class SingletonLogger:
    """Configures the root "roadside" logger exactly once per process"""

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        with cls._lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance.root = instance._configure()
                cls._instance = instance
        return cls._instance

    def get_logger(self, name: str = ROOT_LOGGER) -> logging.Logger:
        if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
            name = f"{ROOT_LOGGER}.{name}"
        return logging.getLogger(name)

    @staticmethod
    def _configure() -> logging.Logger:
        logger = logging.getLogger(ROOT_LOGGER)
        logger.setLevel(logging.DEBUG)
        logger.handlers.clear()
        formatter = JsonFormatter(RECORD_FIELDS)

        log_dir = os.environ.get("LOG_DIR", "logs")
        if log_dir:
            logs_dir = Path(log_dir)
            logs_dir.mkdir(parents=True, exist_ok=True)
            # Fixed filenames, cleared on each run
            for filename, level in (("roadside.log", logging.INFO), ("errors.log", logging.ERROR)):
                handler = logging.FileHandler(logs_dir / filename, mode='w', encoding='utf-8')
                handler.setLevel(level)
                handler.setFormatter(formatter)
                logger.addHandler(handler)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(getattr(logging, os.environ.get("LOG_LEVEL", "DEBUG").upper(), logging.DEBUG))
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)
        return logger


class JsonFormatter(logging.Formatter):
    """
    One JSON object per record.

    @param dict fields: output key -> LogRecord attribute
    """

    def __init__(self, fields: dict):
        super().__init__()
        self.fields = fields
        self.default_time_format = "%Y-%m-%dT%H:%M:%S"
        self.default_msec_format = "%s.%03dZ"

    def format(self, record) -> str:
        record.message = record.getMessage()
        if "asctime" in self.fields.values():
            record.asctime = self.formatTime(record)

        out = {key: record.__dict__[attr] for key, attr in self.fields.items()}
        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            out["exc_info"] = record.exc_text
        return json.dumps(out, default=str)


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Child of the configured "roadside" logger; names outside it are nested under it"""
    return SingletonLogger().get_logger(name)
