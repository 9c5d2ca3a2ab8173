import sys

from loguru import logger

# {extra} carries whatever was attached with logger.bind(), usually the module tag
FORMAT = "{time:MMMM D, YYYY > HH:mm:ss!UTC} | {level} | {message} | {extra}"


def configure_logging(level: str = "INFO", write_to_files: bool = False) -> None:
    logger.remove()
    logger.add(sys.stdout, level=level, format=FORMAT, filter=lambda r: r["level"].no < 30)
    logger.add(sys.stderr, level="WARNING", format=FORMAT, backtrace=True, diagnose=False)
    if write_to_files:
        logger.add("logs/debug.log", level="DEBUG", format=FORMAT, rotation="1 day")
        logger.add("logs/error.log", level="ERROR", format=FORMAT, backtrace=True, rotation="1 day")


def get_logger(module: str):
    return logger.bind(module=f"dexinfo|{module}")
