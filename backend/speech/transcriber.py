"""
Speech-to-text for spoken answers, backed by faster-whisper.

A capture collects audio chunks for one question. Each chunk triggers an
incremental re-transcription of everything heard so far; finalize_now()
returns the best text available without waiting for more transcription.
"""
import os
import logging
import tempfile
import threading
import uuid
from typing import Callable, Optional

from interview.exceptions import TranscriptionError
from utils.config import config

logger = logging.getLogger(__name__)


# Lazy loading of Whisper model to avoid startup delay
_whisper_model = None


def get_whisper_model():
    """Lazy load the Whisper model."""
    global _whisper_model
    if _whisper_model is None:
        from faster_whisper import WhisperModel
        logger.info(f"Loading Whisper model from {config.whisper.model_path} on {config.whisper.device}")
        _whisper_model = WhisperModel(
            config.whisper.model_path,
            device=config.whisper.device,
            compute_type=config.whisper.compute_type
        )
    return _whisper_model


class TranscriptionCapture:
    """
    Audio buffer and running transcript for one question.
    """

    def __init__(self, transcribe: Callable[[bytes], str], capture_id: Optional[str] = None):
        self.capture_id = capture_id or f"capture-{uuid.uuid4().hex[:8]}"
        self._transcribe = transcribe
        self._audio = bytearray()
        self._transcribed_bytes = 0
        self.text = ""
        self.error: Optional[str] = None
        self.closed = False
        self._refresh_lock = threading.Lock()

    @property
    def has_pending_audio(self) -> bool:
        return len(self._audio) > self._transcribed_bytes

    def feed(self, chunk: bytes) -> str:
        """
        Append an audio chunk and refresh the transcript.

        Returns:
            The transcript so far
        """
        self.append(chunk)
        return self.refresh()

    def append(self, chunk: bytes):
        """Buffer an audio chunk without transcribing it."""
        if self.closed:
            raise TranscriptionError(f"Capture {self.capture_id} is closed")
        if chunk:
            self._audio.extend(chunk)

    def refresh(self) -> str:
        """Re-transcribe the buffered audio if anything new arrived."""
        with self._refresh_lock:
            if self.closed or not self.has_pending_audio:
                return self.text

            size = len(self._audio)
            try:
                text = self._transcribe(bytes(self._audio[:size]))
            except TranscriptionError as e:
                # Keep the last good transcript; the typed path still works
                self.error = str(e)
                logger.warning(f"Transcription failed for {self.capture_id}: {e}")
                return self.text

            # Closed while transcribing: the recorded answer already used self.text
            if self.closed:
                return self.text

            self._transcribed_bytes = size
            self.text = text.strip()
            self.error = None
            return self.text

    def finalize(self) -> str:
        """Transcribe any pending audio, then close the capture."""
        self.refresh()
        return self.finalize_now()

    def finalize_now(self) -> str:
        """Close the capture and return the best-effort transcript immediately."""
        self.closed = True
        return self.text


class WhisperTranscriber:
    """
    Speech transcription provider using a faster-whisper model.
    """

    def __init__(self, model_loader: Callable = get_whisper_model, suffix: Optional[str] = None):
        self.model_loader = model_loader
        self.suffix = suffix or config.whisper.audio_suffix

    def open_capture(self) -> TranscriptionCapture:
        return TranscriptionCapture(self.transcribe_bytes)

    def transcribe_bytes(self, audio: bytes) -> str:
        """
        Transcribe an in-memory audio blob.

        Raises:
            TranscriptionError: if the model cannot be loaded or decoding fails
        """
        with tempfile.NamedTemporaryFile(delete=False, suffix=self.suffix) as tmp:
            tmp.write(audio)
            audio_path = tmp.name

        try:
            return self.transcribe_file(audio_path)
        finally:
            try:
                os.unlink(audio_path)
            except OSError:
                logger.debug(f"Could not remove temp audio file {audio_path}")

    def transcribe_file(self, audio_path: str) -> str:
        try:
            whisper = self.model_loader()
            segments, _ = whisper.transcribe(audio_path)
            return " ".join([s.text for s in segments]).strip()
        except Exception as e:
            raise TranscriptionError(f"Transcription failed: {e}") from e


# Global transcriber instance
transcriber = WhisperTranscriber()
