import logging
import os
import sys
from datetime import datetime

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
ROOT_LOGGER_NAME = 'summary_bot'

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ('discord.gateway', 'discord.http', 'httpx')


def _console_handler() -> logging.Handler:
    """Console handler that never drops a record because of the console encoding."""
    if not sys.platform.startswith('win'):
        return logging.StreamHandler()

    try:
        handler = logging.StreamHandler(sys.stdout)
        handler.stream.reconfigure(encoding='utf-8')
        return handler
    except (AttributeError, OSError):
        class SafeStreamHandler(logging.StreamHandler):
            def emit(self, record):
                try:
                    super().emit(record)
                except UnicodeEncodeError:
                    msg = self.format(record)
                    print(msg.encode('ascii', errors='replace').decode('ascii'))
        return SafeStreamHandler(sys.stdout)


def setup_logging(log_directory=None, level=None):
    """
    Log to the console and to a timestamped UTF-8 file.

    LOG_DIRECTORY and LOG_LEVEL environment variables override the defaults
    ("logs" and INFO). Every module logs through a child of the
    ``summary_bot`` logger.
    """
    log_directory = log_directory or os.getenv('LOG_DIRECTORY', 'logs')
    level = level or os.getenv('LOG_LEVEL', 'INFO').upper()

    if not os.path.exists(log_directory):
        os.makedirs(log_directory)

    log_filename = os.path.join(log_directory, f"bot_{datetime.now().strftime('%Y-%m-%d_%H-%M-%S')}.log")

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_filename, encoding='utf-8'),
            _console_handler(),
        ]
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger(ROOT_LOGGER_NAME)


# Initialize logger when this module is imported
logger = setup_logging()
