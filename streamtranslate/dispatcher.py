"""Translation of deltas and merging of the results."""

import asyncio
import logging

from streamtranslate import backend
from streamtranslate import config
from streamtranslate import delta as delta_mod

logger = logging.getLogger(__name__)


def merge_translation(accumulated, translated):
    """Append a translated fragment to the accumulated translation.

    A fragment following a sentence terminator starts a new sentence and
    keeps its casing. Any other fragment continues the current sentence and
    is lower-cased.
    """
    if not accumulated:
        return translated
    if delta_mod.ends_sentence(accumulated):
        return accumulated + ' ' + translated
    return accumulated + ' ' + translated.lower()


class TranslationDispatcher(object):
    """Send deltas to a translate function and merge what comes back.

    Deltas are dispatched as they arrive, each in its own task, without
    waiting for earlier calls. Results are merged in completion order on the
    event loop thread. A result is discarded when the pipeline generation
    moved on while the call was in flight.

    :parameter translate: ``async translate(text, target_language)``
        returning the translated text or None.
    :parameter state: Pipeline state holding ``accumulated_translation``
        and ``generation``.
    :type state: session.PipelineState
    :parameter target_language: Language passed to translate.
    :parameter serialize: Issue calls one at a time in dispatch order.
    :parameter on_update: Coroutine function awaited with the new
        accumulated translation after every merge.
    """
    def __init__(self, translate, state, target_language=None,
                 serialize=False, on_update=None):
        self._translate = translate
        self._state = state
        self.target_language = target_language or config.TARGET_LANGUAGE
        self._lock = asyncio.Lock() if serialize else None
        self._on_update = on_update
        self._tasks = set()

    @property
    def in_flight(self):
        return len(self._tasks)

    def dispatch(self, text):
        generation = self._state.generation
        task = asyncio.ensure_future(
            self._run(text, self.target_language, generation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self):
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def _run(self, text, language, generation):
        try:
            if self._lock is None:
                await self._translate_and_apply(text, language, generation)
            else:
                async with self._lock:
                    await self._translate_and_apply(text, language,
                                                    generation)
        except Exception:
            # Nobody awaits these tasks, so failures end here.
            logger.exception('Dropping translation of %r', text)

    async def _translate_and_apply(self, text, language, generation):
        translated = await self._call(text, language)
        await self._apply(translated, generation)

    async def _call(self, text, language):
        try:
            return await self._translate(text, language)
        except backend.TranslationCallError as e:
            logger.debug('Translation of %r failed: %s', text, e)
            return None

    async def _apply(self, translated, generation):
        if not translated:
            logger.debug('No translation result, dropping delta')
            return
        if generation != self._state.generation:
            logger.debug('Ignoring translation from generation %d',
                         generation)
            return
        self._state.accumulated_translation = merge_translation(
            self._state.accumulated_translation, translated)
        if self._on_update is not None:
            await self._on_update(self._state.accumulated_translation)
