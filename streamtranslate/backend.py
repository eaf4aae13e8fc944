"""Client for the large language model which translates and summarizes.

Requests are OpenAI style chat completions: a single user message carrying
an instruction prompt and the input text. Only ``choices[0].message.content``
is read from the response.
"""

import logging

import httpx

from streamtranslate import config

logger = logging.getLogger(__name__)

TRANSLATE_PROMPT = (
    'Translate the following text into %(language)s: "%(text)s"\n'
    '- Only translate new phrases or sentences that have not been '
    'translated before and have meaning.\n'
    '- Respond only with the newly translated sentence(s), without extra '
    'text or formatting.'
)

SUMMARIZE_PROMPT = (
    'Summarize the following content clearly and professionally:\n\n'
    '"%(text)s"\n\n'
    '- Capture the main ideas and key details concisely.\n'
    '- Maintain a formal and objective tone.\n'
    '- Avoid unnecessary details and repetition.\n'
    '- Ensure the summary is coherent and logically organized.\n'
    'Provide only the summarized text as the output.'
)


class CompletionError(Exception):
    def __init__(self, reason):
        super(CompletionError, self).__init__(
            'Completion request failed: %s' % reason
        )
        self.reason = reason


class TranslationCallError(CompletionError):
    pass


class SummarizationCallError(CompletionError):
    pass


class LLMBackend(object):
    """Async chat-completions client with a pooled HTTP connection.

    :parameter url: Chat completions endpoint.
    :parameter api_key: Bearer token, omitted from requests when empty.
    :parameter model: Model name sent with every request.
    :parameter timeout: Transport timeout in seconds.
    :parameter transport: Optional httpx transport, used by tests.
    """
    def __init__(self, url=None, api_key=None, model=None, timeout=None,
                 transport=None):
        self.url = url or config.LLM_URL
        self.api_key = config.LLM_API_KEY if api_key is None else api_key
        self.model = model or config.LLM_MODEL
        self.timeout = config.LLM_TIMEOUT if timeout is None else timeout
        self._transport = transport
        self._http = None

    def _get_http(self):
        if self._http is None:
            headers = {'Content-Type': 'application/json'}
            if self.api_key:
                headers['Authorization'] = 'Bearer %s' % self.api_key
            self._http = httpx.AsyncClient(timeout=self.timeout,
                                           headers=headers,
                                           transport=self._transport)
        return self._http

    async def complete(self, prompt):
        """Send prompt and return the text of the first choice.

        :raises CompletionError: On transport, status or parse failure.
        """
        body = {
            'model': self.model,
            'messages': [{'role': 'user', 'content': prompt}],
        }
        try:
            response = await self._get_http().post(self.url, json=body)
            response.raise_for_status()
            content = response.json()['choices'][0]['message']['content']
        except httpx.HTTPError as e:
            raise CompletionError(e)
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise CompletionError('malformed response (%r)' % e)
        if not isinstance(content, str):
            raise CompletionError('malformed response (content %r)' % content)
        return content

    async def translate(self, text, target_language):
        """Translate text, returning None when the call fails."""
        prompt = TRANSLATE_PROMPT % {'language': target_language,
                                     'text': text}
        try:
            return await self._complete_or_raise(prompt, TranslationCallError)
        except TranslationCallError as e:
            logger.warning('%s', e)
            return None

    async def summarize(self, text):
        """Summarize text, returning None when the call fails."""
        prompt = SUMMARIZE_PROMPT % {'text': text}
        try:
            return await self._complete_or_raise(prompt,
                                                 SummarizationCallError)
        except SummarizationCallError as e:
            logger.warning('%s', e)
            return None

    async def _complete_or_raise(self, prompt, error_cls):
        try:
            return await self.complete(prompt)
        except CompletionError as e:
            raise error_cls(e.reason)

    async def close(self):
        if self._http is not None:
            await self._http.aclose()
            self._http = None
