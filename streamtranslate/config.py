"""Settings read from the environment.

Module level values are read once at import time. :class:`SessionConfig`
copies them as per-session defaults so a running session never reads
process-wide state.
"""

import os

LLM_URL = os.getenv('LLM_URL',
                    'https://api.openai.com/v1/chat/completions')
LLM_API_KEY = os.getenv('LLM_API_KEY') or os.getenv('OPENAI_API_KEY', '')
LLM_MODEL = os.getenv('LLM_MODEL', 'gpt-4o-mini')
LLM_TIMEOUT = float(os.getenv('LLM_TIMEOUT', '30'))

DEBOUNCE_SECONDS = float(os.getenv('DEBOUNCE_SECONDS', '0.7'))
TARGET_LANGUAGE = os.getenv('TARGET_LANGUAGE', 'Vietnamese')
SOURCE_LANGUAGE = os.getenv('SOURCE_LANGUAGE', 'en-US')

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')


class SessionConfig(object):
    """Per-session settings of a :class:`session.SessionController`.

    :param target_language: Language name translations are produced in.
    :param source_language: Locale the recognizer listens for.
    :param auto_translate: Whether settled snapshots are translated.
    :param debounce: Quiet period in seconds before a snapshot settles.
    :param serialize: Issue translation calls one at a time, in order.
    """
    def __init__(self, target_language=None, source_language=None,
                 auto_translate=True, debounce=None, serialize=False):
        self.target_language = target_language or TARGET_LANGUAGE
        self.source_language = source_language or SOURCE_LANGUAGE
        self.auto_translate = auto_translate
        self.debounce = DEBOUNCE_SECONDS if debounce is None else debounce
        self.serialize = serialize

    def __repr__(self):
        return ('SessionConfig(target_language=%s, source_language=%s, '
                'auto_translate=%s, debounce=%s, serialize=%s)' % (
                    self.target_language, self.source_language,
                    self.auto_translate, self.debounce, self.serialize))
