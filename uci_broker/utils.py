import sys
from enum import IntEnum


class ReportingLevel(IntEnum):
    QUIET = 0
    BASIC = 1
    VERBOSE = 2


_reporting_level = ReportingLevel.BASIC


def set_reporting_level(level: ReportingLevel) -> None:
    global _reporting_level
    _reporting_level = ReportingLevel(level)


def get_reporting_level() -> ReportingLevel:
    return _reporting_level


def color_text(text, color_code):
    return f"\033[{color_code}m{text}\033[0m"

def debug_text(text):
    return f"{color_text('DEBUG', '31')} {text}"

def info_text(text):
    return f"{color_text('INFO', '34')}  {text}"

def warning_text(text):
    return f"{color_text('WARNING', '33')} {text}"

def error_text(text):
    return f"{color_text('ERROR', '31')} {text}"

def sending_text(text):
    return f"{color_text('SENDING  ', '32')} {text}"

def received_text(text):
    return f"{color_text('RECEIVED ', '35')} {text}"


def report(message: str, level: ReportingLevel = ReportingLevel.BASIC) -> None:
    """Write a diagnostic line to stderr when the reporting level allows it.

    ``QUIET`` still lets errors through: callers pass ``ReportingLevel.QUIET``
    for messages that must always be shown.
    """
    if level > _reporting_level:
        return
    print(message, file=sys.stderr, flush=True)
