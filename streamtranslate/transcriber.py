"""Speech recognizers.

A :class:`Transcriber` reads audio from an :class:`audio.AudioSource`,
streams it to a recognition service and emits a :class:`TranscribeEvent`
to every registered handler whenever the service reports text. Services
report interim results which are revised as more audio arrives, then mark
a result final once the utterance is complete.
"""

import asyncio
import base64
import json
import logging

import websockets

from streamtranslate import audio

logger = logging.getLogger(__name__)


class AlreadyRunningError(Exception):
    def __init__(self):
        super(AlreadyRunningError, self).__init__(
            'Object started when it is already running'
        )


class AuthorizationError(Exception):
    pass


class NotAuthorizedError(AuthorizationError):
    def __init__(self, reason):
        super(NotAuthorizedError, self).__init__(
            'Not permitted to record: %s' % reason
        )


class RecognizerUnavailableError(AuthorizationError):
    def __init__(self, reason):
        super(RecognizerUnavailableError, self).__init__(
            'Recognizer unavailable: %s' % reason
        )


class SourceError(Exception):
    def __init__(self, reason):
        super(SourceError, self).__init__(
            'Recognition failed: %s' % reason
        )


class TranscribeResult(object):
    def __init__(self, transcript, confidence=None):
        self.transcript = transcript
        self.confidence = confidence

    def __str__(self):
        return 'TranscribeResult(transcript=%s, confidence=%s)' % (
            self.transcript, self.confidence
        )


class TranscribeEvent(object):
    def __init__(self, results, final):
        self.results = results
        self.final = final

    @property
    def text(self):
        """Best transcript of every result, joined by spaces."""
        parts = [r.transcript.strip() for r in self.results]
        return ' '.join(p for p in parts if p)

    def __str__(self):
        ret = 'TranscribeEvent(results=[%s], final=%s)'
        results_str = ', '.join([str(x) for x in self.results])
        return ret % (results_str, self.final)


class Transcriber(object):
    """Base class for implementing a transcriber.

    Once :func:`transcribe` is called a transcriber reads chunks from its
    audio source and streams them to a transcription service until the
    service stops producing events, :func:`stop` is called or either side
    fails. Failures are raised from :func:`transcribe`.

    :parameter source: Input audio source
    :type source: audio.AudioSource
    """
    def __init__(self, source):
        self._source = source
        self.running = False
        self._transcribing = False
        self._stop_requested = asyncio.Event()
        self._stopped_running = asyncio.Event()
        self._ev_handlers = []

    async def authorize(self):
        """Check that audio can be recorded and recognized.

        :raises NotAuthorizedError: The audio source refused access.
        :raises RecognizerUnavailableError: The service cannot be used.
        """
        try:
            await self._source.authorize()
        except (audio.NoDefaultInputDeviceError,
                audio.InputDeviceError) as e:
            raise NotAuthorizedError(e)

    async def _start(self):
        if not self.running:
            self.running = True
            self._stop_requested.clear()
            self._stopped_running.clear()
        else:
            raise AlreadyRunningError()

    async def transcribe(self):
        await self._start()
        self._transcribing = True
        try:
            audio_task = asyncio.ensure_future(self._handle_audio())
            read_task = asyncio.ensure_future(self._read_events())
            stop_task = asyncio.ensure_future(self._stop_requested.wait())
            try:
                while self.running and not read_task.done():
                    waits = [task for task in (audio_task, read_task)
                             if not task.done()]
                    done, pending = await asyncio.wait(
                        waits + [stop_task],
                        return_when=asyncio.FIRST_COMPLETED
                    )
                    for fut in done:
                        if fut is stop_task:
                            continue
                        exc = fut.exception()
                        if exc:
                            raise exc
            finally:
                tasks = (audio_task, read_task, stop_task)
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            self._transcribing = False
            self._stopped_running.set()
            await self.stop(wait=False)

    async def stop(self, wait=True):
        if self.running:
            self.running = False
            self._stop_requested.set()
        if wait and self._transcribing:
            await self._stopped_running.wait()

    def register_event_handler(self, handler):
        self._ev_handlers.append(handler)

    async def _handle_event(self, event):
        for handler in self._ev_handlers:
            await handler(event)

    async def _handle_audio(self):
        async with self._source.listen():
            async for chunk in self._source:
                if not self.running:
                    break
                await self._send_chunk(chunk)
        await self._audio_finished()

    async def _send_chunk(self, audio_chunk):
        raise NotImplementedError()

    async def _audio_finished(self):
        pass

    async def _read_events(self):
        raise NotImplementedError()


class WatsonError(Exception):
    def __init__(self, msg):
        super(WatsonError, self).__init__(
            'Watson reported: %s' % msg
        )


class WatsonStartError(WatsonError):
    pass


class WatsonTranscriber(Transcriber):
    """Stream audio to IBM Watson speech to text over a websocket.

    Interim results are requested so that events arrive while the speaker
    is still talking.

    :parameter source: Input audio source
    :type source: audio.AudioSource
    :parameter source_freq: Sampling frequency of the source.
    :parameter url: Websocket recognize endpoint of the service instance.
    :parameter api_key: Service credential.
    :parameter language: Locale, used to choose a model when none is given.
    :parameter model: Recognition model name.
    """
    def __init__(self, source, source_freq, url, api_key, language='en-US',
                 model=None, user='apikey'):
        super(WatsonTranscriber, self).__init__(source)
        self._source_freq = source_freq
        self._url = url
        self._user = user
        self._api_key = api_key
        self._model = model or '%s_BroadbandModel' % language
        self._ws = None

    async def authorize(self):
        if not self._url:
            raise RecognizerUnavailableError('no service url configured')
        if not self._api_key:
            raise RecognizerUnavailableError('no credentials configured')
        await super(WatsonTranscriber, self).authorize()

    async def _start(self):
        connect_url = '%s?model=%s' % (self._url, self._model)
        auth_header = self._to_auth_header(self._user, self._api_key)
        self._ws = await websockets.connect(
            connect_url,
            additional_headers={'Authorization': auth_header}
        )
        try:
            await self._send_start(self._ws, self._source_freq)
        except (WatsonError, websockets.exceptions.ConnectionClosed):
            ws, self._ws = self._ws, None
            await ws.close()
            raise
        await super(WatsonTranscriber, self)._start()

    async def stop(self, wait=True):
        # Stop the audio loop before the socket is detached.
        await super(WatsonTranscriber, self).stop(wait=False)
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.send(json.dumps({'action': 'stop'}))
            except websockets.exceptions.ConnectionClosed:
                pass
            await ws.close()
        await super(WatsonTranscriber, self).stop(wait)

    async def _send_start(self, ws, rate):
        start_data = {
            'action': 'start',
            'content-type': 'audio/l16;rate=%d' % rate,
            'interim_results': True,
            'inactivity_timeout': -1,
            'max_alternatives': 1,
        }
        await ws.send(json.dumps(start_data))
        msg = json.loads(await ws.recv())
        if msg.get('state') != 'listening':
            raise WatsonStartError(msg)

    async def _send_chunk(self, audio_chunk):
        await self._ws.send(bytes(audio_chunk.audio))

    async def _audio_finished(self):
        # No more audio, ask the service to finalize what it has heard.
        if self._ws is not None:
            await self._ws.send(json.dumps({'action': 'stop'}))

    async def _read_events(self):
        ws = self._ws
        while self.running:
            try:
                read = await ws.recv()
            except websockets.exceptions.ConnectionClosed:
                break
            msg = json.loads(read)
            if 'error' in msg:
                raise WatsonError(msg['error'])
            if msg.get('state') == 'listening':
                # Sent once the service processed a stop action.
                break
            if 'results' not in msg:
                continue
            await self._handle_event(self._msg_to_event(msg))

    def _to_auth_header(self, user, passwd):
        seed = ':'.join((user, passwd))
        return ' '.join(('Basic',
                         base64.b64encode(seed.encode('utf-8')).decode()))

    def _msg_to_event(self, msg):
        t_rs = []
        final = True
        for result in msg.get('results', []):
            final = final and result.get('final', False)
            alternatives = result.get('alternatives', [])
            if alternatives:
                alt = alternatives[0]
                t_rs.append(TranscribeResult(alt['transcript'],
                                             alt.get('confidence', None)))
        return TranscribeEvent(t_rs, bool(t_rs) and final)
