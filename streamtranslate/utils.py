import asyncio
import logging
import sys

from streamtranslate import config

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class InterruptError(Exception):
    pass


async def interruptable_get(queue, event):
    """Get an item from queue, giving up as soon as event is set.

    :raises InterruptError: event was set before an item became available.
    """
    trigger = asyncio.Event()

    def set_trigger(future):
        trigger.set()

    get_fut = asyncio.ensure_future(queue.get())
    interrupt_fut = asyncio.ensure_future(event.wait())
    get_fut.add_done_callback(set_trigger)
    interrupt_fut.add_done_callback(set_trigger)

    try:
        await trigger.wait()
    finally:
        interrupt_fut.cancel()
        if not get_fut.done():
            get_fut.cancel()

    if get_fut.done() and not get_fut.cancelled():
        return get_fut.result()
    raise InterruptError


def setup_logging(name=None, level=None, format=DEFAULT_FORMAT):
    """Configure the root handler and return a logger.

    :param name: Logger name, root logger when None.
    :param level: Level name, defaults to the LOG_LEVEL setting.
    """
    level = (level or config.LOG_LEVEL).upper()
    log_level = getattr(logging, level, logging.INFO)
    logging.basicConfig(level=log_level, format=format, stream=sys.stderr)
    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    return logger
