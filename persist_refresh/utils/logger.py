"""
Persisted-Model Refresh Scheduler - Logging Utility
===================================================

Logging setup using Loguru with:
- Console and file logging
- Automatic log rotation
- JSON logging support
- Standard-library logging (APScheduler, SQLAlchemy) forwarded into Loguru
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from persist_refresh.core.config import Config

FORWARDED_LOGGERS = ("apscheduler", "sqlalchemy")


class InterceptHandler(logging.Handler):
    """Route standard-library log records into Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


class LoggerSetup:
    """Configure and manage application logging"""

    def __init__(self, config: Optional[dict] = None):
        """
        Initialize logger with configuration

        Args:
            config: ``logging`` section of settings.yaml; read from Config when omitted
        """
        self.config = config if config is not None else (Config.get("logging") or self._default_config())
        self._setup_logger()
        self._forward_stdlib()

    def _default_config(self) -> dict:
        """Default logging configuration"""
        return {
            'level': 'INFO',
            'format': '<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>',
            'console': {'enabled': True, 'colorize': True},
            'file': {
                'enabled': True,
                'path': './logs/persist-refresh.log',
                'rotation': '500 MB',
                'retention': '30 days',
                'compression': 'zip'
            },
            'error_file': {
                'enabled': True,
                'path': './logs/errors.log',
                'level': 'ERROR',
                'rotation': '100 MB',
                'retention': '90 days'
            },
            'json': {
                'enabled': False,
                'path': './logs/persist-refresh.json'
            }
        }

    def _setup_logger(self):
        """Configure loguru logger"""
        # Remove default handler
        logger.remove()

        log_level = self.config.get('level', 'INFO')
        log_format = self.config.get('format') or self._default_config()['format']

        console_config = self.config.get('console', {})
        if console_config.get('enabled', True):
            logger.add(
                sys.stderr,
                format=log_format,
                level=log_level,
                colorize=console_config.get('colorize', True),
                backtrace=True,
                diagnose=False
            )

        file_config = self.config.get('file', {})
        if file_config.get('enabled', False):
            log_path = Path(file_config.get('path', './logs/persist-refresh.log'))
            log_path.parent.mkdir(parents=True, exist_ok=True)

            logger.add(
                log_path,
                format=log_format,
                level=log_level,
                rotation=file_config.get('rotation', '500 MB'),
                retention=file_config.get('retention', '30 days'),
                compression=file_config.get('compression', 'zip'),
                backtrace=True,
                diagnose=False,
                enqueue=True
            )

        error_config = self.config.get('error_file', {})
        if error_config.get('enabled', False):
            error_path = Path(error_config.get('path', './logs/errors.log'))
            error_path.parent.mkdir(parents=True, exist_ok=True)

            logger.add(
                error_path,
                format=log_format,
                level=error_config.get('level', 'ERROR'),
                rotation=error_config.get('rotation', '100 MB'),
                retention=error_config.get('retention', '90 days'),
                backtrace=True,
                diagnose=False,
                enqueue=True
            )

        # JSON logging (for log aggregation systems)
        json_config = self.config.get('json', {})
        if json_config.get('enabled', False):
            json_path = Path(json_config.get('path', './logs/persist-refresh.json'))
            json_path.parent.mkdir(parents=True, exist_ok=True)

            logger.add(
                json_path,
                format="{message}",
                level=log_level,
                serialize=True,
                rotation=file_config.get('rotation', '500 MB'),
                retention=file_config.get('retention', '30 days'),
                enqueue=True
            )

    def _forward_stdlib(self):
        handler = InterceptHandler()
        for name in FORWARDED_LOGGERS:
            std_logger = logging.getLogger(name)
            std_logger.handlers = [handler]
            std_logger.propagate = False
        # SQLAlchemy engine logging is chatty at INFO
        logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
        logging.getLogger("apscheduler").setLevel(self.config.get('level', 'INFO'))

    def get_logger(self, name: Optional[str] = None):
        """
        Get a logger instance

        Args:
            name: Logger name (usually __name__)

        Returns:
            Configured logger instance
        """
        if name:
            return logger.bind(name=name)
        return logger


# Global logger instance
_logger_setup = None


def setup_logging(config: Optional[dict] = None):
    """
    Initialize logging system

    Args:
        config: ``logging`` section of settings.yaml
    """
    global _logger_setup
    _logger_setup = LoggerSetup(config)
    logger.info("Logging system initialized")


def get_logger(name: Optional[str] = None):
    """
    Get a logger instance

    Loguru's global logger is usable before ``setup_logging`` runs, so modules
    can bind at import time and pick up sinks once the entry point configures them.

    Example:
        >>> from persist_refresh.utils.logger import get_logger
        >>> log = get_logger(__name__)
        >>> log.info("Scheduling refresh")
    """
    if _logger_setup is None:
        if name:
            return logger.bind(name=name)
        return logger
    return _logger_setup.get_logger(name)
