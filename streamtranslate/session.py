"""Recording session wiring source, gate, delta extraction and translation.

A :class:`SessionController` moves through :class:`SessionState` values::

    IDLE -> AUTHORIZING -> RECORDING -> STOPPED
                 |              |
                 +--> FAILED <--+

While recording, every snapshot from the :class:`source.TranscriptSource`
becomes the displayed transcript and is pushed into a
:class:`gate.DebounceGate`. Settled snapshots are diffed against the
previous settled snapshot and the delta goes to a
:class:`dispatcher.TranslationDispatcher`.

All state is mutated on the event loop thread. Handlers registered with
:func:`SessionController.register_update_handler` are awaited with a
:class:`SessionUpdate` whenever an observable field changes.
"""

import asyncio
import enum
import logging

from streamtranslate import config as config_mod
from streamtranslate import delta as delta_mod
from streamtranslate import dispatcher
from streamtranslate import gate
from streamtranslate import transcriber

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    IDLE = 'idle'
    AUTHORIZING = 'authorizing'
    RECORDING = 'recording'
    STOPPED = 'stopped'
    FAILED = 'failed'


class PipelineState(object):
    """Mutable state of the translation pipeline.

    ``generation`` is advanced whenever earlier translation results must no
    longer be applied.
    """
    def __init__(self):
        self.previous_snapshot = ''
        self.accumulated_translation = ''
        self.generation = 0

    def reset(self):
        self.previous_snapshot = ''
        self.accumulated_translation = ''
        self.generation += 1


class SessionUpdate(object):
    def __init__(self, field, value):
        self.field = field
        self.value = value

    def __str__(self):
        return 'SessionUpdate(field=%s, value=%r)' % (self.field, self.value)


class SessionController(object):
    """Owns the recording lifecycle and the translation pipeline.

    :parameter source: Transcript source to record from.
    :type source: source.TranscriptSource
    :parameter backend: Object with async ``translate(text, language)``
        and ``summarize(text)`` returning text or None.
    :parameter config: Session settings.
    :type config: config.SessionConfig
    """
    def __init__(self, source, backend, config=None):
        self.config = config or config_mod.SessionConfig()
        self._source = source
        self._backend = backend
        self._state = PipelineState()
        self._handlers = []
        self._consumer = None
        self._stop_requested = False

        self.state = SessionState.IDLE
        self.transcript = ''
        self.summary = ''
        self.error = None
        self.is_translating = False
        self.is_summarizing = False

        self._source.set_source_language(self.config.source_language)
        self._gate = gate.DebounceGate(self._on_settled,
                                       self._auto_translate_enabled,
                                       delay=self.config.debounce)
        self._dispatcher = dispatcher.TranslationDispatcher(
            self._backend.translate,
            self._state,
            target_language=self.config.target_language,
            serialize=self.config.serialize,
            on_update=self._on_translation,
        )

    @property
    def translation(self):
        return self._state.accumulated_translation

    @property
    def pipeline(self):
        return self._state

    @property
    def dispatcher(self):
        return self._dispatcher

    @property
    def is_recording(self):
        return self.state == SessionState.RECORDING

    def register_update_handler(self, handler):
        self._handlers.append(handler)

    async def start(self):
        if self.state in (SessionState.AUTHORIZING, SessionState.RECORDING):
            logger.debug('Ignoring start while %s', self.state.value)
            return
        # Must be claimed before the first await so handlers yielding
        # cannot let a second start() through.
        previous, self.state = self.state, SessionState.AUTHORIZING
        self._stop_requested = False
        logger.info('Session %s -> %s', previous.value, self.state.value)
        await self._set('error', None)
        await self._set('state', SessionState.AUTHORIZING)
        try:
            await self._source.authorize()
        except transcriber.AuthorizationError as e:
            logger.warning('Authorization failed: %s', e)
            await self._set('error', str(e))
            await self._set_state(SessionState.FAILED)
            return
        if self._stop_requested:
            logger.info('Stopped while authorizing')
            await self._source.stop()
            await self._set_state(SessionState.STOPPED)
            return

        self._state.reset()
        self._gate.reset()
        await self._set('translation', self.translation)
        self._consumer = asyncio.ensure_future(self._consume())
        await self._set_state(SessionState.RECORDING)

    async def stop(self):
        if self.state == SessionState.AUTHORIZING:
            # start() finishes the transition once authorization returns.
            self._stop_requested = True
            return
        if self.state != SessionState.RECORDING:
            return
        self._gate.cancel()
        consumer, self._consumer = self._consumer, None
        if consumer is not None and not consumer.done():
            consumer.cancel()
            try:
                await consumer
            except asyncio.CancelledError:
                pass
        await self._source.stop()
        await self._set_state(SessionState.STOPPED)

    async def wait_stopped(self):
        """Wait until the source ends or the session is stopped."""
        consumer = self._consumer
        if consumer is not None:
            await asyncio.wait([consumer])

    async def clear(self):
        """Empty transcript, translation and summary.

        Recording is unaffected. Translations still in flight are
        discarded.
        """
        self._state.reset()
        await self._set('transcript', '')
        await self._set('translation', '')
        await self._set('summary', '')

    async def translate(self):
        """Translate the whole transcript, replacing the translation."""
        generation = self._state.generation
        await self._set('is_translating', True)
        try:
            translated = await self._backend.translate(
                self.transcript, self.config.target_language)
        finally:
            await self._set('is_translating', False)
        if translated and generation == self._state.generation:
            self._state.accumulated_translation = translated
            await self._set('translation', translated)

    async def summarize(self):
        """Summarize the transcript; an empty summary means unavailable."""
        await self._set('is_summarizing', True)
        try:
            summary = await self._backend.summarize(self.transcript)
        finally:
            await self._set('is_summarizing', False)
        await self._set('summary', summary or '')

    def set_auto_translate(self, enabled):
        self.config.auto_translate = enabled

    def set_target_language(self, language):
        self.config.target_language = language
        self._dispatcher.target_language = language

    def set_source_language(self, language):
        """Applies from the next :func:`start`."""
        self.config.source_language = language
        self._source.set_source_language(language)

    def _auto_translate_enabled(self):
        return self.config.auto_translate

    def _on_settled(self, snapshot):
        delta = delta_mod.extract_delta(self._state.previous_snapshot,
                                        snapshot)
        self._state.previous_snapshot = snapshot
        if delta is None:
            return
        logger.debug('Dispatching delta %r', delta)
        self._dispatcher.dispatch(delta)

    async def _on_translation(self, text):
        await self._set('translation', text)

    async def _consume(self):
        try:
            async for snapshot in self._source.snapshots():
                await self._set('transcript', snapshot)
                self._gate.push(snapshot)
        except transcriber.SourceError as e:
            logger.warning('Session ended by source error: %s', e)
            self._gate.cancel()
            self._consumer = None
            await self._set('error', str(e))
            await self._set_state(SessionState.FAILED)
            return
        self._gate.cancel()
        self._consumer = None
        logger.info('Transcript source finished')
        await self._set_state(SessionState.STOPPED)

    async def _set_state(self, state):
        logger.info('Session %s -> %s', self.state.value, state.value)
        await self._set('state', state)

    async def _set(self, field, value):
        if field != 'translation':
            setattr(self, field, value)
        update = SessionUpdate(field, value)
        for handler in self._handlers:
            await handler(update)
