import logging


LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def configure(verbose=False, quiet=False):
    """Logging setup for the command line tools.

    Library code only creates loggers; the scripts decide what gets shown.
    """
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
    # mido is chatty at debug level
    logging.getLogger("mido").setLevel(max(level, logging.INFO))
