# Copyright 2024 inuex35
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Logging configuration for the measurement pipeline"""

import copy
import logging
import sys
from enum import Enum
from typing import Optional

ROOT_LOGGER_NAME = "pygnssmeas"


class LogLevel(Enum):
    """Log levels for the pipeline"""
    TRACE = 5
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL


# Add TRACE level to logging
logging.addLevelName(LogLevel.TRACE.value, "TRACE")


def trace(self, message, *args, **kwargs):
    """Add trace method to logger"""
    if self.isEnabledFor(LogLevel.TRACE.value):
        self._log(LogLevel.TRACE.value, message, args, **kwargs)


# Add trace method to Logger class
logging.Logger.trace = trace


def _level_value(level: str) -> int:
    return getattr(LogLevel, level.upper()).value


class ColoredFormatter(logging.Formatter):
    """Colored log formatter"""

    # Color codes
    COLORS = {
        'TRACE': '\033[36m',     # Cyan
        'DEBUG': '\033[34m',     # Blue
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        # Colour a copy so other handlers still see the plain level name
        record = copy.copy(record)
        log_color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{log_color}{record.levelname}{self.RESET}"
        return super().format(record)


def setup_logger(name: str = ROOT_LOGGER_NAME,
                 level: str = "INFO",
                 log_file: Optional[str] = None,
                 console: bool = True) -> logging.Logger:
    """
    Setup logger with specified configuration

    Module loggers of the package (``pygnssmeas.observation.measurements``
    and so on) propagate to the ``pygnssmeas`` logger, so configuring it
    once covers the whole pipeline.

    Parameters:
    -----------
    name : str
        Logger name
    level : str
        Log level (TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_file : Optional[str]
        Log file path (if None, no file logging)
    console : bool
        Enable console output

    Returns:
    --------
    logging.Logger
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(_level_value(level))

    # Remove existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(_level_value(level))
        console_handler.setFormatter(ColoredFormatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        ))
        logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(_level_value(level))
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get logger by name, at the level configured for the module if any"""
    logger = logging.getLogger(name)
    if name in logger_config.module_levels:
        logger.setLevel(_level_value(logger_config.module_levels[name]))
    return logger


class LogContext:
    """Context manager for temporary log level change"""

    def __init__(self, logger: logging.Logger, level: str):
        self.logger = logger
        self.new_level = _level_value(level)
        self.old_level = None

    def __enter__(self):
        self.old_level = self.logger.level
        self.logger.setLevel(self.new_level)
        return self.logger

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.logger.setLevel(self.old_level)


class LoggerConfig:
    """Logger configuration manager for module-specific log levels"""

    def __init__(self):
        self.module_levels = {}
        self.default_level = "INFO"
        self.log_file = None
        self.console = True

    def set_module_level(self, module_name: str, level: str):
        """Set log level for a module logger, e.g. 'pygnssmeas.gnss.wls_pvt'"""
        self.module_levels[module_name] = level
        logging.getLogger(module_name).setLevel(_level_value(level))

    def get_level_for_module(self, module_name: str) -> str:
        """Get log level for specific module"""
        return self.module_levels.get(module_name, self.default_level)

    def configure_from_dict(self, config: dict):
        """Configure from dictionary"""
        self.default_level = config.get('default_level', self.default_level)
        self.log_file = config.get('log_file', self.log_file)
        self.console = config.get('console', self.console)
        for module, level in config.get('module_levels', {}).items():
            self.set_module_level(module, level)

    def setup_all_loggers(self) -> logging.Logger:
        """Attach handlers to the package logger and apply module levels"""
        logger = setup_logger(ROOT_LOGGER_NAME, self.default_level, self.log_file, self.console)
        # Module loggers only filter; records are emitted by the package handlers
        for module, level in self.module_levels.items():
            logging.getLogger(module).setLevel(_level_value(level))
        # Handlers must pass everything the module loggers let through
        if self.module_levels:
            lowest = min([_level_value(self.default_level)] +
                         [_level_value(lvl) for lvl in self.module_levels.values()])
            for handler in logger.handlers:
                handler.setLevel(lowest)
        return logger


# Global logger configuration
logger_config = LoggerConfig()


def setup_logger_from_config(config: dict) -> logging.Logger:
    """Setup loggers from configuration dictionary

    Example config:
    {
        'default_level': 'INFO',
        'log_file': 'pipeline.log',
        'console': True,
        'module_levels': {
            'pygnssmeas.gnss.wls_pvt': 'DEBUG',
            'pygnssmeas.satellite.satellite_position': 'WARNING'
        }
    }
    """
    logger_config.configure_from_dict(config)
    return logger_config.setup_all_loggers()
