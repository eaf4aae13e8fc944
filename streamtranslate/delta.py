"""Extraction of the new part of a growing transcript."""

SENTENCE_TERMINATORS = '.!?'


def extract_delta(previous, current):
    """Return the text of current which was not present in previous.

    When current extends previous, only the added suffix is returned. When
    the recognizer revised earlier text, current no longer starts with
    previous and the whole of current is returned, so a revised span may be
    translated again.

    :param previous: Snapshot which last went through extraction.
    :type previous: str
    :param current: Newly settled snapshot.
    :type current: str
    :ret: Whitespace-trimmed delta, or None when nothing is left.
    """
    if current.startswith(previous) and len(current) > len(previous):
        delta = current[len(previous):]
    else:
        delta = current
    delta = delta.strip()
    return delta or None


def ends_sentence(text):
    return bool(text) and text[-1] in SENTENCE_TERMINATORS
