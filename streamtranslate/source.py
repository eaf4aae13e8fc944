"""Transcript snapshots from a running recognizer.

Recognizers report each utterance as a series of interim results followed
by a final one. :class:`TranscriptSource` folds those events into
snapshots: the text of every finalized utterance so far, followed by the
current interim text. A snapshot usually extends the previous one, but the
interim tail can be rewritten at any time.
"""

import asyncio
import logging

from streamtranslate import config
from streamtranslate import transcriber
from streamtranslate import utils

logger = logging.getLogger(__name__)


class TranscriptSource(object):
    """Start, iterate and stop a recognizer as a stream of snapshots.

    :parameter transcriber_factory: Called with the source language,
        returns a fresh :class:`transcriber.Transcriber`.
    :parameter source_language: Locale to recognize.
    """
    def __init__(self, transcriber_factory, source_language=None):
        self._transcriber_factory = transcriber_factory
        self.source_language = source_language or config.SOURCE_LANGUAGE
        self._transcriber = None
        self._task = None
        self._queue = None
        self._done = asyncio.Event()
        self._stopping = False
        self._accumulated = ''

    def set_source_language(self, language):
        """Takes effect the next time the recognizer is created."""
        self.source_language = language

    async def authorize(self):
        """Create the recognizer and check it may be used.

        :raises transcriber.AuthorizationError: Recording or recognition
            is not possible.
        """
        self._transcriber = self._transcriber_factory(self.source_language)
        await self._transcriber.authorize()

    async def snapshots(self):
        """Run the recognizer, yielding every new snapshot.

        Iteration ends when the recognizer finishes or :func:`stop` is
        called.

        :raises transcriber.SourceError: The recognizer failed.
        """
        if self._transcriber is None:
            await self.authorize()
        ts = self._transcriber
        self._queue = asyncio.Queue()
        self._accumulated = ''
        self._stopping = False
        self._done.clear()

        ts.register_event_handler(self._handle_event)
        task = self._task = asyncio.ensure_future(ts.transcribe())
        task.add_done_callback(lambda fut: self._done.set())
        try:
            while True:
                try:
                    yield await utils.interruptable_get(self._queue,
                                                        self._done)
                except utils.InterruptError:
                    break
            while not self._stopping and not self._queue.empty():
                yield self._queue.get_nowait()

            if task.done() and not task.cancelled() and task.exception():
                exc = task.exception()
                raise transcriber.SourceError(exc) from exc
        finally:
            await self.stop()

    async def stop(self):
        """Stop the recognizer and drop the accumulated utterances."""
        self._stopping = True
        self._done.set()
        self._accumulated = ''
        ts, self._transcriber = self._transcriber, None
        task, self._task = self._task, None
        if ts is not None:
            await ts.stop(wait=False)
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug('Recognizer ended with %s', e)

    async def _handle_event(self, event):
        text = event.text
        if not text:
            return
        snapshot = self._accumulated + text
        if event.final:
            self._accumulated += text + ' '
        await self._queue.put(snapshot)
