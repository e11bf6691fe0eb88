"""Cast audio concatenation.

Responsibilities:
- Merge ordered synthesized segments into one artifact payload.
- Preserve segment order exactly as synthesized.
"""

from __future__ import annotations

import io
import wave


class AudioMerger:
    """Concatenate synthesized segments in memory.

    MP3 is a frame stream, so segments are joined byte-wise. WAV segments are
    merged frame-wise under one header and must share channel count, sample
    width, and frame rate.
    """

    def merge(self, segments: list[bytes], audio_format: str) -> bytes:
        """Merge ordered segment payloads into one payload of `audio_format`."""

        if audio_format == "mp3":
            return b"".join(segments)
        if audio_format == "wav":
            try:
                return self._merge_wav(segments)
            except (wave.Error, EOFError) as exc:
                raise ValueError(f"Invalid WAV segment: {exc}") from exc
        raise ValueError(f"Unsupported audio format `{audio_format}`.")

    @staticmethod
    def _merge_wav(segments: list[bytes]) -> bytes:
        """Merge WAV payloads into one WAV payload."""

        output = io.BytesIO()
        if not segments:
            with wave.open(output, "wb") as merged:
                merged.setnchannels(1)
                merged.setsampwidth(2)
                merged.setframerate(24000)
                merged.writeframes(b"")
            return output.getvalue()

        with wave.open(io.BytesIO(segments[0]), "rb") as first:
            channels = first.getnchannels()
            sample_width = first.getsampwidth()
            framerate = first.getframerate()

        with wave.open(output, "wb") as merged:
            merged.setnchannels(channels)
            merged.setsampwidth(sample_width)
            merged.setframerate(framerate)

            for index, segment in enumerate(segments):
                with wave.open(io.BytesIO(segment), "rb") as chunk:
                    if (
                        chunk.getnchannels() != channels
                        or chunk.getsampwidth() != sample_width
                        or chunk.getframerate() != framerate
                    ):
                        raise ValueError(f"Incompatible WAV parameters for segment {index}.")
                    merged.writeframes(chunk.readframes(chunk.getnframes()))

        return output.getvalue()

    @staticmethod
    def wav_duration_seconds(payload: bytes) -> float | None:
        """Return the duration of a WAV payload, or `None` for undecodable input."""

        try:
            with wave.open(io.BytesIO(payload), "rb") as handle:
                framerate = handle.getframerate()
                if framerate <= 0:
                    return None
                return handle.getnframes() / float(framerate)
        except (wave.Error, EOFError):
            return None
