import argparse
import asyncio
import os
import sys
import wave

from streamtranslate import audio
from streamtranslate import backend
from streamtranslate import config
from streamtranslate import session
from streamtranslate import source
from streamtranslate import transcriber
from streamtranslate import utils


def parse_args(argv):
    parser = argparse.ArgumentParser(
        description='Transcribe a microphone and translate as you speak.')

    parser.add_argument('-u', '--username',
                        help='Username for the recognition service.',
                        default='apikey',
                        type=str)
    parser.add_argument('-p', '--password',
                        help='API key for the recognition service.',
                        type=str)
    parser.add_argument('--url',
                        help='Websocket recognize URL of the service.',
                        type=str)
    parser.add_argument('-f', '--frequency',
                        help='Sampling frequency from mic.',
                        default=16000,
                        type=int)
    parser.add_argument('-d', '--device-index',
                        help='Device index for mic',
                        type=int)
    parser.add_argument('-w', '--wave-file',
                        help='Replay a mono wave file instead of the mic.',
                        type=str)
    parser.add_argument('-s', '--source-language',
                        help='Locale spoken into the mic.',
                        default=config.SOURCE_LANGUAGE,
                        type=str)
    parser.add_argument('-t', '--target-language',
                        help='Language to translate into.',
                        default=config.TARGET_LANGUAGE,
                        type=str)
    parser.add_argument('-A', '--no-auto-translate',
                        help='Only translate the full transcript at exit.',
                        action='store_true')
    parser.add_argument('--serialize',
                        help='Translate one delta at a time, in order.',
                        action='store_true')
    parser.add_argument('--summarize',
                        help='Print a summary of the transcript at exit.',
                        action='store_true')
    parser.add_argument('--duration',
                        help='Stop recording after this many seconds.',
                        type=float)
    parser.add_argument('-v', '--verbose',
                        help='Log debug output.',
                        action='store_true')
    return parser.parse_args(argv)


def exit(error):
    print("ERROR: %s" % error, file=sys.stderr)
    sys.exit(1)


async def print_update(update):
    if update.field in ('transcript', 'translation') and update.value:
        print('%s: %s' % (update.field, update.value))
    elif update.field == 'state':
        print('[%s]' % update.value.value)
    elif update.field == 'error' and update.value:
        print('ERROR: %s' % update.value, file=sys.stderr)


def get_audio_source(args):
    if args.wave_file:
        return audio.WaveSource(args.wave_file, chunk_frames=1600,
                                realtime=True)
    return audio.Microphone(rate=args.frequency,
                            device_ndx=args.device_index)


def transcriber_factory(args):
    def create(language):
        src = get_audio_source(args)
        freq = args.frequency
        if args.wave_file:
            with wave.open(args.wave_file) as fp:
                freq = fp.getframerate()
        return transcriber.WatsonTranscriber(
            src,
            freq,
            url=args.url,
            api_key=args.password,
            language=language,
            user=args.username,
        )
    return create


async def run_session(args, controller, llm):
    try:
        await controller.start()
        if controller.state != session.SessionState.RECORDING:
            return 1
        if args.duration:
            try:
                await asyncio.wait_for(controller.wait_stopped(),
                                       args.duration)
            except asyncio.TimeoutError:
                pass
        else:
            await controller.wait_stopped()
        await controller.stop()
        await controller.dispatcher.wait_idle()

        if args.no_auto_translate and controller.transcript:
            await controller.translate()
        if args.summarize and controller.transcript:
            await controller.summarize()
            print('summary: %s' % (controller.summary or '(not available)'))
        return 1 if controller.state == session.SessionState.FAILED else 0
    finally:
        await llm.close()


def apply_environment(args):
    """Fill recognizer credentials from WATSON_STT_* variables."""
    args.url = args.url or os.environ.get('WATSON_STT_URL')
    args.username = os.environ.get('WATSON_STT_USER') or args.username
    args.password = os.environ.get('WATSON_STT_APIKEY') or args.password
    return args


def translate(args):
    apply_environment(args)
    if not args.url:
        exit(error='You must specify a recognize url.')
    if not args.password:
        exit(error='You must specify an api key.')

    session_config = config.SessionConfig(
        target_language=args.target_language,
        source_language=args.source_language,
        auto_translate=not args.no_auto_translate,
        serialize=args.serialize,
    )
    src = source.TranscriptSource(transcriber_factory(args),
                                  args.source_language)
    llm = backend.LLMBackend()
    controller = session.SessionController(src, llm, session_config)
    controller.register_update_handler(print_update)

    print('Beginning transcription.')
    return asyncio.run(run_session(args, controller, llm))


def main():
    args = parse_args(sys.argv[1:])
    utils.setup_logging(level='DEBUG' if args.verbose else None)
    sys.exit(translate(args))
