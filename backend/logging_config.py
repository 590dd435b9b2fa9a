"""
Logging for the Genetic Strategy Finder.

Every line is written to stdout as:

    HH:MM:SS [ LABEL ] message

where the label block is colored per component so runs, validation and
socket traffic are easy to tell apart in a terminal or `docker logs`.
Callers mostly use log(), which picks the component from a bracketed
message prefix such as "[Genetic] ".
"""
import logging
import sys
import os
from datetime import datetime
from typing import Optional

APP_LOGGER = 'gsf'


# ANSI escape sequences
class Colors:
    RESET = "\033[0m"
    DIM = "\033[2m"

    # Background + foreground pairs used for component labels
    ORANGE_ON_BLACK = "\033[48;5;208m\033[30m"
    PURPLE_ON_WHITE = "\033[48;5;93m\033[97m"
    GREEN_ON_BLACK = "\033[42m\033[30m"
    YELLOW_ON_BLACK = "\033[43m\033[30m"
    BLUE_ON_WHITE = "\033[44m\033[97m"
    FOREST_ON_WHITE = "\033[48;5;22m\033[97m"
    CYAN_ON_BLACK = "\033[46m\033[30m"
    NAVY_ON_WHITE = "\033[48;5;17m\033[97m"
    PINK_ON_BLACK = "\033[48;5;205m\033[30m"
    RED_ON_WHITE = "\033[41m\033[97m"


# component -> (label style, label text)
COMPONENT_STYLES = {
    'genetic': (Colors.ORANGE_ON_BLACK, 'GA'),
    'validation': (Colors.PURPLE_ON_WHITE, 'VALID'),
    'startup': (Colors.GREEN_ON_BLACK, 'START'),
    'shutdown': (Colors.YELLOW_ON_BLACK, 'STOP'),
    'signals': (Colors.BLUE_ON_WHITE, 'SIGNL'),
    'backtest': (Colors.FOREST_ON_WHITE, 'BTEST'),
    'runner': (Colors.CYAN_ON_BLACK, 'RUN'),
    'websocket': (Colors.NAVY_ON_WHITE, 'WS'),
    'export': (Colors.PINK_ON_BLACK, 'EXPRT'),
    'app': ('', 'APP'),
}

# Warnings and errors highlight the whole message, not just the label
HIGHLIGHTED_LEVELS = {
    logging.WARNING: Colors.YELLOW_ON_BLACK,
    logging.ERROR: Colors.RED_ON_WHITE,
    logging.CRITICAL: Colors.RED_ON_WHITE,
}


class CLIFormatter(logging.Formatter):
    """One short colored line per record."""

    def format(self, record):
        _, _, component = record.name.rpartition('.')
        if component == APP_LOGGER or not component:
            component = 'app'
        style, label = COMPONENT_STYLES.get(component, ('', component.upper()[:5]))

        text = record.getMessage()
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)

        highlight = HIGHLIGHTED_LEVELS.get(record.levelno)
        if highlight:
            text = f"{highlight} {text} {Colors.RESET}"
        elif record.levelno == logging.DEBUG:
            text = f"{Colors.DIM}{text}{Colors.RESET}"

        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        return f"{Colors.DIM}{stamp}{Colors.RESET} {style} {label} {Colors.RESET} {text}"


def setup_logging(level: str = None) -> logging.Logger:
    """
    Attach the CLI handler to the application logger.

    The level comes from the argument, then the LOG_LEVEL environment
    variable, then INFO. Calling this again replaces the handler rather
    than stacking a second one.
    """
    name = (level or os.environ.get('LOG_LEVEL') or 'INFO').upper()
    numeric = logging.getLevelName(name)
    if not isinstance(numeric, int):
        numeric = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CLIFormatter())

    app_logger = logging.getLogger(APP_LOGGER)
    app_logger.handlers = [handler]
    app_logger.setLevel(numeric)
    app_logger.propagate = False
    return app_logger


def get_logger(component: str) -> logging.Logger:
    return logging.getLogger(f'{APP_LOGGER}.{component}')


# Message prefix -> component. First match wins.
_PREFIX_COMPONENTS = [
    (('[Genetic] ', '[GA] '), 'genetic'),
    (('[Backtest] ',), 'backtest'),
    (('[Validation] ', '[Walk-Forward] ', '[Monte Carlo] '), 'validation'),
    (('[Runner] ', '[Run] '), 'runner'),
    (('[Signals] ',), 'signals'),
    (('[Startup] ',), 'startup'),
    (('[Shutdown] ',), 'shutdown'),
    (('[WebSocket] ', '[WS] '), 'websocket'),
    (('[Export] ',), 'export'),
]


def _split_prefix(message: str):
    for prefixes, component in _PREFIX_COMPONENTS:
        for prefix in prefixes:
            if message.startswith(prefix):
                return component, message[len(prefix):]
    return 'app', message


def log(message: str, level: str = 'INFO', component: Optional[str] = None):
    """
    Log through the component logger named by the message prefix.

        log("[Genetic] Generation 3/50 best=0.61")      # -> genetic, prefix stripped
        log("Seeding population", component='genetic')
        log("[Run] abc rejected: no bars", level='WARNING')
    """
    if component is None:
        component, message = _split_prefix(message)
    numeric = logging.getLevelName(level.upper())
    get_logger(component).log(numeric if isinstance(numeric, int) else logging.INFO, message)


def _stream_handler(formatter: str, stream: str) -> dict:
    return {"class": "logging.StreamHandler", "formatter": formatter, "stream": f"ext://sys.{stream}"}


# Passed to uvicorn.run(); keeps uvicorn quiet unless something goes wrong
UVICORN_LOG_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {"format": "%(levelname)s | %(message)s"},
        "access": {"format": "%(levelname)s | %(client_addr)s - %(request_line)s %(status_code)s"},
    },
    "handlers": {
        "default": _stream_handler("default", "stderr"),
        "access": _stream_handler("access", "stdout"),
    },
    "loggers": {
        "uvicorn": {"handlers": ["default"], "level": "WARNING"},
        "uvicorn.error": {"level": "WARNING"},
        "uvicorn.access": {"handlers": ["access"], "level": "WARNING"},
    },
}


setup_logging()
