import sys
from pathlib import Path
from loguru import logger


def setup_logger(log_file: str = "~/.asqli/asqli.log", level: str = "INFO"):
    logger.remove()

    log_path = Path(log_file).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger.add(
        str(log_path),
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        level=level.upper(),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level:<8} | {module}:{function}:{line} | {message}",
        backtrace=True,
        diagnose=False,
        enqueue=True,
    )

    # The TUI owns the terminal; only fatal problems may reach stderr.
    logger.add(
        sys.stderr,
        level="CRITICAL",
        format="{time:HH:mm:ss} | {level} | {message}",
    )

    logger.info("asqli logger initialized")
    return logger
