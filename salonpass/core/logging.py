"""Logging configuration"""

import logging
import sys
from pathlib import Path
from loguru import logger
from salonpass.core.config import settings


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to loguru"""
    
    def emit(self, record):
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(log_to_files: bool = True):
    """Setup logging configuration"""
    
    # Remove default handler
    logger.remove()
    
    logger.add(
        sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
               "<level>{level: <8}</level> | "
               "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
               "<level>{message}</level>",
        level=settings.LOG_LEVEL,
        colorize=True,
    )
    
    if log_to_files:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(exist_ok=True)
        
        logger.add(
            log_dir / "error.log",
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}",
            level="ERROR",
            rotation="500 MB",
            retention="10 days",
            compression="zip",
        )
        
        # Lifecycle transitions get their own file for support lookups
        logger.add(
            log_dir / "subscriptions.log",
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {message}",
            level="INFO",
            filter="salonpass.services.subscription",
            rotation="1 day",
            retention="30 days",
            compression="zip",
        )
        
        logger.add(
            log_dir / "app.log",
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}",
            level=settings.LOG_LEVEL,
            rotation="1 day",
            retention="7 days",
            compression="zip",
        )
    
    # Intercept uvicorn / celery logs
    for name in ("uvicorn", "uvicorn.access", "fastapi", "celery"):
        logging.getLogger(name).handlers = [InterceptHandler()]
    
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    
    logger.info(f"Logging initialized - Level: {settings.LOG_LEVEL}")
