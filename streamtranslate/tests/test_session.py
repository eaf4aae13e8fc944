import asyncio

from streamtranslate import config
from streamtranslate import session
from streamtranslate import source
from streamtranslate.tests import base
from streamtranslate.tests import fakes

# Gap between scripted snapshots, comfortably longer than the debounce.
GAP = .1
DEBOUNCE = .02


class SessionControllerTestCase(base.TestCase):
    def setUp(self):
        super(SessionControllerTestCase, self).setUp()
        self.updates = []
        self.backend = fakes.FakeBackend()

    async def _record(self, update):
        self.updates.append(update)

    def _controller(self, script, hold=True, denied=False, authorize_delay=0,
                    **kwargs):
        self.factory = fakes.ScriptedFactory(script, hold=hold,
                                             denied=denied,
                                             authorize_delay=authorize_delay)
        src = source.TranscriptSource(self.factory)
        kwargs.setdefault('target_language', 'Vietnamese')
        kwargs.setdefault('debounce', DEBOUNCE)
        controller = session.SessionController(
            src, self.backend, config.SessionConfig(**kwargs))
        controller.register_update_handler(self._record)
        return controller

    def _states(self):
        return [u.value for u in self.updates if u.field == 'state']

    async def _finish(self, controller):
        await asyncio.sleep(GAP)
        await controller.stop()
        await controller.dispatcher.wait_idle()

    @base.asynctest
    async def test_end_to_end(self):
        controller = self._controller([
            (0, fakes.interim('Hi')),
            (GAP, fakes.interim('Hi there')),
            (GAP, fakes.interim('Hi there.')),
        ])
        await controller.start()
        self.assertEqual(session.SessionState.RECORDING, controller.state)
        await asyncio.sleep(2 * GAP)
        await self._finish(controller)

        self.assertEqual([('Hi there', 'Vietnamese'), ('.', 'Vietnamese')],
                         self.backend.translate_calls)
        self.assertEqual('Hi there .', controller.translation)
        self.assertEqual('Hi there.', controller.transcript)
        self.assertEqual([session.SessionState.AUTHORIZING,
                          session.SessionState.RECORDING,
                          session.SessionState.STOPPED], self._states())

    @base.asynctest
    async def test_first_snapshot_never_translated(self):
        controller = self._controller([(0, fakes.interim('Hello'))])
        await controller.start()
        await self._finish(controller)
        self.assertEqual([], self.backend.translate_calls)
        self.assertEqual('Hello', controller.transcript)

    @base.asynctest
    async def test_burst_translated_once(self):
        controller = self._controller([
            (0, fakes.interim('So')),
            (GAP, fakes.interim('I')),
            (0, fakes.interim('I think')),
            (0, fakes.interim('I think so')),
        ])
        await controller.start()
        await asyncio.sleep(GAP)
        await self._finish(controller)
        self.assertEqual([('I think so', 'Vietnamese')],
                         self.backend.translate_calls)

    @base.asynctest
    async def test_auto_translate_disabled(self):
        controller = self._controller(
            [(0, fakes.interim('word ' * i)) for i in range(1, 20)] +
            [(GAP, fakes.final('done.'))],
            auto_translate=False)
        await controller.start()
        await asyncio.sleep(GAP)
        await self._finish(controller)
        self.assertEqual([], self.backend.translate_calls)
        self.assertEqual('', controller.translation)

    @base.asynctest
    async def test_revision_translates_whole_snapshot(self):
        controller = self._controller([
            (0, fakes.interim('I')),
            (GAP, fakes.interim('I seen it')),
            (GAP, fakes.interim('I saw it')),
        ])
        await controller.start()
        await asyncio.sleep(2 * GAP)
        await self._finish(controller)
        self.assertEqual(['I seen it', 'I saw it'],
                         [text for text, _ in self.backend.translate_calls])

    @base.asynctest
    async def test_authorization_denied(self):
        controller = self._controller([], denied=True)
        await controller.start()
        self.assertEqual(session.SessionState.FAILED, controller.state)
        self.assertIn('No default input device', controller.error)
        self.assertIsNone(controller._consumer)
        self.assertEqual([session.SessionState.AUTHORIZING,
                          session.SessionState.FAILED], self._states())

    @base.asynctest
    async def test_retry_after_failure(self):
        controller = self._controller([], denied=True)
        await controller.start()
        self.factory.denied = False
        await controller.start()
        self.assertEqual(session.SessionState.RECORDING, controller.state)
        self.assertIsNone(controller.error)
        await controller.stop()

    @base.asynctest
    async def test_source_error_ends_session(self):
        controller = self._controller([
            (0, fakes.interim('Hi')),
            (GAP, RuntimeError('audio engine lost')),
        ])
        await controller.start()
        await controller.wait_stopped()
        self.assertEqual(session.SessionState.FAILED, controller.state)
        self.assertIn('audio engine lost', controller.error)
        self.assertFalse(self.factory.created[0].running)

    @base.asynctest
    async def test_source_final_stops_session(self):
        controller = self._controller([
            (0, fakes.interim('Hi')),
            (GAP, fakes.final('Hi there.')),
            (2 * GAP, fakes.interim('Bye')),
        ], hold=False)
        await controller.start()
        await controller.wait_stopped()
        await controller.dispatcher.wait_idle()
        self.assertEqual(session.SessionState.STOPPED, controller.state)
        self.assertEqual('Hi there.', controller.translation)
        self.assertFalse(controller._gate.pending)

    @base.asynctest
    async def test_in_flight_translation_applies_after_stop(self):
        self.backend.delays = {'Hi there': 3 * GAP}
        controller = self._controller([
            (0, fakes.interim('Hi')),
            (GAP, fakes.interim('Hi there')),
        ])
        await controller.start()
        await asyncio.sleep(GAP + 5 * DEBOUNCE)
        self.assertEqual(1, controller.dispatcher.in_flight)
        await controller.stop()
        self.assertEqual(session.SessionState.STOPPED, controller.state)
        await controller.dispatcher.wait_idle()
        self.assertEqual('Hi there', controller.translation)

    @base.asynctest
    async def test_stop_cancels_pending_snapshot(self):
        controller = self._controller([
            (0, fakes.interim('Hi')),
            (0, fakes.interim('Hi there')),
        ], debounce=1)
        await controller.start()
        await asyncio.sleep(GAP)
        self.assertTrue(controller._gate.pending)
        await controller.stop()
        self.assertFalse(controller._gate.pending)
        await asyncio.sleep(GAP)
        self.assertEqual([], self.backend.translate_calls)

    @base.asynctest
    async def test_clear_discards_in_flight(self):
        self.backend.delays = {'Hi there': 3 * GAP}
        controller = self._controller([
            (0, fakes.interim('Hi')),
            (GAP, fakes.interim('Hi there')),
        ])
        await controller.start()
        await asyncio.sleep(GAP + 5 * DEBOUNCE)
        controller.summary = 'old summary'
        await controller.clear()
        self.assertEqual(session.SessionState.RECORDING, controller.state)
        await self._finish(controller)
        self.assertEqual('', controller.translation)
        self.assertEqual('', controller.transcript)
        self.assertEqual('', controller.summary)

    @base.asynctest
    async def test_restart_begins_fresh_pipeline(self):
        controller = self._controller([
            (0, fakes.interim('Hi')),
            (GAP, fakes.interim('Hi there.')),
        ])
        await controller.start()
        await asyncio.sleep(2 * GAP)
        await controller.stop()
        await controller.dispatcher.wait_idle()
        self.assertEqual('Hi there.', controller.translation)
        generation = controller.pipeline.generation

        await controller.start()
        self.assertEqual('', controller.translation)
        self.assertEqual('', controller.pipeline.previous_snapshot)
        self.assertEqual(generation + 1, controller.pipeline.generation)
        await asyncio.sleep(2 * GAP)
        await self._finish(controller)
        self.assertEqual('Hi there.', controller.translation)
        self.assertEqual(2, len(self.factory.created))

    @base.asynctest
    async def test_start_while_recording_ignored(self):
        controller = self._controller([])
        await controller.start()
        await controller.start()
        self.assertEqual(1, len(self.factory.created))
        await controller.stop()
        await controller.stop()
        self.assertEqual([session.SessionState.AUTHORIZING,
                          session.SessionState.RECORDING,
                          session.SessionState.STOPPED], self._states())

    @base.asynctest
    async def test_stop_while_authorizing(self):
        controller = self._controller([(0, fakes.interim('Hi'))],
                                      authorize_delay=GAP)
        task = asyncio.ensure_future(controller.start())
        await asyncio.sleep(GAP / 2)
        self.assertEqual(session.SessionState.AUTHORIZING, controller.state)
        await controller.stop()
        await task
        self.assertEqual(session.SessionState.STOPPED, controller.state)
        self.assertIsNone(controller._consumer)
        self.assertFalse(self.factory.created[0].running)
        await asyncio.sleep(GAP)
        self.assertEqual('', controller.transcript)
        self.assertEqual([session.SessionState.AUTHORIZING,
                          session.SessionState.STOPPED], self._states())

        await controller.start()
        self.assertEqual(session.SessionState.RECORDING, controller.state)
        await controller.stop()

    @base.asynctest
    async def test_concurrent_starts_subscribe_once(self):
        controller = self._controller([])

        async def yielding_handler(update):
            await asyncio.sleep(0)
        controller.register_update_handler(yielding_handler)

        await asyncio.gather(controller.start(), controller.start())
        self.assertEqual(1, len(self.factory.created))
        self.assertEqual(session.SessionState.RECORDING, controller.state)
        await controller.stop()
        self.assertEqual([session.SessionState.AUTHORIZING,
                          session.SessionState.RECORDING,
                          session.SessionState.STOPPED], self._states())

    @base.asynctest
    async def test_target_language_change(self):
        controller = self._controller([
            (0, fakes.interim('Hi')),
            (GAP, fakes.interim('Hi there.')),
            (2 * GAP, fakes.interim('Hi there. Bye')),
        ])
        await controller.start()
        await asyncio.sleep(GAP + 5 * DEBOUNCE)
        controller.set_target_language('French')
        await asyncio.sleep(2 * GAP)
        await self._finish(controller)
        self.assertEqual([('Hi there.', 'Vietnamese'), ('Bye', 'French')],
                         self.backend.translate_calls)

    @base.asynctest
    async def test_source_language_forwarded(self):
        controller = self._controller([], source_language='de-DE')
        controller.set_source_language('ja-JP')
        await controller.start()
        await controller.stop()
        self.assertEqual('ja-JP', self.factory.created[0].language)

    @base.asynctest
    async def test_manual_translate_replaces(self):
        self.backend.results = {'Hola amigo': 'Hello friend'}
        controller = self._controller([], auto_translate=False)
        controller.transcript = 'Hola amigo'
        await controller.translate()
        self.assertEqual('Hello friend', controller.translation)
        self.assertFalse(controller.is_translating)
        busy = [u.value for u in self.updates if u.field == 'is_translating']
        self.assertEqual([True, False], busy)

    @base.asynctest
    async def test_manual_translate_failure_keeps_translation(self):
        self.backend.results = {'Hola': None}
        controller = self._controller([], auto_translate=False)
        controller.pipeline.accumulated_translation = 'previous'
        controller.transcript = 'Hola'
        await controller.translate()
        self.assertEqual('previous', controller.translation)
        self.assertFalse(controller.is_translating)

    @base.asynctest
    async def test_summarize(self):
        controller = self._controller([])
        controller.transcript = 'We talked for an hour.'
        await controller.summarize()
        self.assertEqual('A summary.', controller.summary)
        self.assertEqual(['We talked for an hour.'],
                         self.backend.summarize_calls)
        busy = [u.value for u in self.updates if u.field == 'is_summarizing']
        self.assertEqual([True, False], busy)

    @base.asynctest
    async def test_summarize_unavailable(self):
        self.backend.summary = None
        controller = self._controller([])
        controller.transcript = 'Anything'
        await controller.summarize()
        self.assertEqual('', controller.summary)
        self.assertFalse(controller.is_summarizing)
