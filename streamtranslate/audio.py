"""Audio sources feeding a recognizer.

:class:`AudioSource` is the base class. :class:`Microphone` records from a
local input device, :class:`WaveSource` replays a wave file, which is handy
for trying a recognizer without speaking into a microphone.
"""


import asyncio
import collections
import wave

import janus
try:
    import pyaudio
except ImportError:
    # pyaudio needs portaudio headers; wave replay works without it
    pyaudio = None


class NoMoreChunksError(Exception):
    pass


class NoDefaultInputDeviceError(Exception):
    def __init__(self):
        super(NoDefaultInputDeviceError, self).__init__(
            'No default input device'
        )


class InputDeviceError(Exception):
    def __init__(self, reason):
        super(InputDeviceError, self).__init__(
            'Input device unusable: %s' % reason
        )


AudioChunk = collections.namedtuple('AudioChunk',
                                    ['start_time', 'audio', 'width', 'freq'])
"""A run of mono PCM samples.

:param start_time: Timestamp of the first sample.
:param audio: Sample bytes.
:param width: Bytes per sample.
:param freq: Sampling frequency.
"""


class _ListenCtxtMgr(object):
    def __init__(self, source):
        self._source = source

    async def __aenter__(self):
        await self._source.start()

    async def __aexit__(self, *args):
        await self._source.stop()


class AudioSource(object):
    """Base class for providing audio.

    Subclasses override :func:`get_chunk` and, when access to the audio
    can be denied, :func:`authorize`.
    """
    def __init__(self):
        self.running = False

    def listen(self):
        """Async context manager which starts and stops the source."""
        return _ListenCtxtMgr(self)

    def __aiter__(self):
        return self

    async def __anext__(self):
        try:
            return await self.get_chunk()
        except NoMoreChunksError:
            raise StopAsyncIteration('No more chunks')

    async def authorize(self):
        """Check the audio can be read, raising when it cannot."""

    async def start(self):
        self.running = True

    async def stop(self):
        self.running = False

    async def get_chunk(self):
        raise NotImplementedError()


class Microphone(AudioSource):
    """Use a local microphone as an audio source.

    :parameter channels: Number of channels to record.
    :type channels: int
    :parameter rate: Sample frequency
    :type rate: int
    :parameter device_ndx: PyAudio device index, default input when None.
    :type device_ndx: int
    """
    width = 2

    def __init__(self, channels=1, rate=16000, device_ndx=None):
        super(Microphone, self).__init__()
        self._channels = channels
        self._rate = rate
        self._device_ndx = device_ndx
        self._pyaudio = None
        self._stream = None
        self._stream_queue = None

    async def authorize(self):
        if pyaudio is None:
            raise InputDeviceError('pyaudio is not installed')
        p = pyaudio.PyAudio()
        try:
            if self._device_ndx is None:
                try:
                    p.get_default_input_device_info()
                except IOError:
                    raise NoDefaultInputDeviceError()
            else:
                info = p.get_device_info_by_index(self._device_ndx)
                if info.get('maxInputChannels', 0) < self._channels:
                    raise InputDeviceError(
                        '%s has no %d channel input' % (
                            info.get('name'), self._channels))
        finally:
            p.terminate()

    async def start(self):
        await super(Microphone, self).start()
        self._stream_queue = janus.Queue()
        self._pyaudio = pyaudio.PyAudio()
        self._stream = self._pyaudio.open(
            input=True,
            format=pyaudio.paInt16,
            channels=self._channels,
            rate=self._rate,
            input_device_index=self._device_ndx,
            stream_callback=self._stream_callback
        )

    async def stop(self):
        await super(Microphone, self).stop()
        if self._stream is not None:
            self._stream.stop_stream()
            self._stream.close()
            self._stream = None
        if self._pyaudio is not None:
            self._pyaudio.terminate()
            self._pyaudio = None
        if self._stream_queue is not None:
            self._stream_queue.close()
            await self._stream_queue.wait_closed()
            self._stream_queue = None

    async def get_chunk(self):
        if self._stream_queue is None:
            raise NoMoreChunksError('Microphone is not running')
        try:
            time_info, data = await self._stream_queue.async_q.get()
        except (janus.AsyncQueueShutDown, RuntimeError):
            raise NoMoreChunksError('Microphone stopped')
        return AudioChunk(start_time=time_info['input_buffer_adc_time'],
                          audio=data, width=self.width, freq=self._rate)

    def _stream_callback(self, in_data, frame_count,
                         time_info, status_flags):
        if not self.running:
            return (None, pyaudio.paComplete)
        self._stream_queue.sync_q.put((time_info, in_data))
        return (None, pyaudio.paContinue)


class WaveSource(AudioSource):
    """Use a mono wave file as an audio source.

    :parameter wave_path: Path to wave file.
    :type wave_path: string
    :parameter chunk_frames: Frames per chunk, whole file when None.
    :type chunk_frames: int
    :parameter realtime: Pace chunks at the rate they were recorded.
    :type realtime: bool
    """
    def __init__(self, wave_path, chunk_frames=None, realtime=False):
        super(WaveSource, self).__init__()
        self._wave_path = wave_path
        self._chunk_frames = chunk_frames
        self._realtime = realtime
        self._wave_fp = None
        self.width = None
        self.freq = None

    async def authorize(self):
        try:
            with wave.open(self._wave_path) as fp:
                channels = fp.getnchannels()
        except (OSError, EOFError, wave.Error) as e:
            raise InputDeviceError(e)
        if channels != 1:
            raise InputDeviceError('%s is not mono' % self._wave_path)

    async def start(self):
        await super(WaveSource, self).start()
        self._wave_fp = wave.open(self._wave_path)
        self.width = self._wave_fp.getsampwidth()
        self.freq = self._wave_fp.getframerate()

    async def stop(self):
        if self._wave_fp is not None:
            self._wave_fp.close()
            self._wave_fp = None
        await super(WaveSource, self).stop()

    async def get_chunk(self):
        if self._wave_fp is None:
            raise NoMoreChunksError('Wave source is not running')
        start_frame = self._wave_fp.tell()
        frame_cnt = self._chunk_frames or self._wave_fp.getnframes()
        frames = self._wave_fp.readframes(frame_cnt)
        if len(frames) == 0:
            raise NoMoreChunksError('No more frames in wav')
        if self._realtime:
            await asyncio.sleep(len(frames) / self.width / self.freq)
        return AudioChunk(start_frame / self.freq, audio=frames,
                          width=self.width, freq=self.freq)
