import sys
import logging

from loguru import logger

import config


class InterceptHandler(logging.Handler):
    """Routes stdlib logging records (uvicorn, sqlalchemy) into loguru."""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = config.LOG_LEVEL, log_file: str | None = config.LOG_FILE):
    logger.remove()

    logger.add(
        sys.stdout,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    )

    if log_file:
        logger.add(
            log_file,
            level="ERROR",
            rotation="10 MB",
            retention="1 month",
            compression="zip",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    # SQL echo goes through its own logger; keep uvicorn access lines quiet
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


__all__ = ["logger", "setup_logging"]
