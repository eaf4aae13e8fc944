"""Debounce gate between the transcript source and delta extraction."""

import asyncio
import logging

from streamtranslate import config

logger = logging.getLogger(__name__)


class DebounceGate(object):
    """Turn a bursty snapshot stream into settled snapshots.

    Every admitted snapshot cancels the pending timer and arms a new one, so
    only the last snapshot of a burst is emitted, ``delay`` seconds after it
    arrived. The timer is single-slot; nothing is ever queued.

    Snapshots are not admitted when they are the first one after
    :func:`reset`, when ``is_enabled()`` returns False, or when they equal
    the previously admitted snapshot.

    :parameter emit: Called with each settled snapshot.
    :type emit: callable
    :parameter is_enabled: Returns the current auto-translate flag.
    :type is_enabled: callable
    :parameter delay: Quiet period in seconds.
    :type delay: float
    :parameter loop: Event loop owning the timer.
    """
    def __init__(self, emit, is_enabled, delay=None, loop=None):
        self._emit = emit
        self._is_enabled = is_enabled
        self.delay = config.DEBOUNCE_SECONDS if delay is None else delay
        self._loop = loop
        self._timer = None
        self._pending_snapshot = None
        self._last_admitted = None
        self._seen_first = False

    @property
    def pending(self):
        return self._timer is not None

    def push(self, snapshot):
        if not self._seen_first:
            self._seen_first = True
            logger.debug('Dropping first snapshot of session')
            return
        if not self._is_enabled():
            return
        if snapshot == self._last_admitted:
            return
        self._last_admitted = snapshot

        self.cancel()
        self._pending_snapshot = snapshot
        self._timer = self._get_loop().call_later(self.delay, self._fire)

    def cancel(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending_snapshot = None

    def reset(self):
        self.cancel()
        self._last_admitted = None
        self._seen_first = False

    def _fire(self):
        snapshot = self._pending_snapshot
        self._timer = None
        self._pending_snapshot = None
        if not self._is_enabled():
            logger.debug('Auto-translate disabled, discarding settled '
                         'snapshot')
            return
        self._emit(snapshot)

    def _get_loop(self):
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop
