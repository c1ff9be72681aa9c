"""
Logging Setup Module

Routes the sfu loggers through rich so log lines match console output.
"""
import logging

from rich.logging import RichHandler


def configure_logging(verbose: bool = False, console=None) -> logging.Logger:
    """
    Attach a RichHandler to the 'sfu' logger.

    Args:
        verbose: Log at DEBUG instead of INFO
        console: Optional rich Console to log to

    Returns:
        The configured 'sfu' logger
    """
    logger = logging.getLogger('sfu')
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler_kwargs = {'show_path': verbose, 'markup': False, 'rich_tracebacks': verbose}
    if console is not None:
        handler_kwargs['console'] = console
    handler = RichHandler(**handler_kwargs)
    handler.setFormatter(logging.Formatter('%(message)s', datefmt='[%X]'))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
