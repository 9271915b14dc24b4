import logging
import threading

logger = logging.getLogger(__name__)


def do_after(delay, fn, *args, **kwargs):
    """
    Runs fn(*args, **kwargs) on a daemon thread after `delay` seconds.
    Exceptions raised by fn are logged.
    :return: the started timer. Call cancel() on it to prevent fn from running.
    """
    def run():
        try:
            fn(*args, **kwargs)
        except Exception as e:
            logger.exception("deferred action %s failed: %s" % (fn, e))

    timer = threading.Timer(delay, run)
    timer.daemon = True
    timer.start()
    return timer
