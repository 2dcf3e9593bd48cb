import asyncio
import logging
from pathlib import Path

from voice_dispatch.config.schema import STTConfig

logger = logging.getLogger(__name__)


class TranscriptionError(Exception):
    pass


class SpeechToTextService:
    """Speech-to-text for recorded audio files using faster-whisper."""

    def __init__(self, config: STTConfig) -> None:
        self._config = config
        self._model: object | None = None

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    async def start(self) -> None:
        from faster_whisper import WhisperModel

        loop = asyncio.get_running_loop()
        self._model = await loop.run_in_executor(
            None,
            lambda: WhisperModel(
                self._config.model_size,
                device=self._config.device,
                compute_type=self._config.compute_type,
            ),
        )
        logger.info(f"STT model loaded: {self._config.model_size}")

    async def stop(self) -> None:
        self._model = None
        logger.info("STT model unloaded")

    async def transcribe_file(self, audio_path: str | Path) -> str:
        """Transcribe an audio file. The container format is decoded by faster-whisper."""
        if self._model is None:
            raise TranscriptionError("STT model not loaded")

        path = Path(audio_path)
        if not path.is_file():
            raise TranscriptionError(f"Audio file does not exist: {path}")

        loop = asyncio.get_running_loop()
        try:
            segments, _info = await loop.run_in_executor(
                None,
                lambda: self._model.transcribe(  # type: ignore[union-attr]
                    str(path),
                    beam_size=self._config.beam_size,
                    language=self._config.language,
                    vad_filter=self._config.vad_filter,
                ),
            )
            # Segments is a generator - consume it in executor too
            text = await loop.run_in_executor(
                None,
                lambda: " ".join(seg.text.strip() for seg in segments),
            )
        except Exception as e:
            raise TranscriptionError(f"Transcription failed: {e}") from e

        return text.strip()
