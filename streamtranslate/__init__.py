"""Live transcription with incremental translation.

A :class:`transcriber.Transcriber` turns audio from an
:class:`audio.AudioSource` into recognition events, which a
:class:`source.TranscriptSource` folds into transcript snapshots.
A :class:`session.SessionController` debounces the snapshots, extracts
what is new in each one and sends it to :class:`backend.LLMBackend` for
translation, merging the results into one running translation.
"""
