from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from typing import Optional

from moviepy import AudioFileClip

from shortvideo.errors import AudioProcessingError

NORMALIZED_SAMPLE_RATE = 16000


def probe_duration_ms(audio: bytes | None, suffix: str = ".mp3") -> int | None:
    if not audio:
        return None
    with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
        tmp.write(audio)
        tmp_path = tmp.name
    try:
        clip = AudioFileClip(tmp_path)
        duration = clip.duration
        clip.close()
        return int(round(duration * 1000))
    except (OSError, ValueError):
        return None
    finally:
        os.remove(tmp_path)


class FfmpegTranscoder:
    def __init__(
        self,
        binary: str = "ffmpeg",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.binary = binary
        self.log = logger or logging.getLogger(__name__)

    def normalize(self, audio: bytes) -> bytes:
        return self._convert(
            audio,
            out_suffix=".wav",
            args=["-ar", str(NORMALIZED_SAMPLE_RATE), "-ac", "1", "-c:a", "pcm_s16le"],
        )

    def to_delivery_format(self, audio: bytes) -> bytes:
        return self._convert(
            audio,
            out_suffix=".mp3",
            args=["-ar", "44100", "-ac", "2", "-c:a", "libmp3lame", "-b:a", "192k"],
        )

    def _convert(self, audio: bytes, out_suffix: str, args: list[str]) -> bytes:
        if not audio:
            raise AudioProcessingError("no audio to transcode")
        with tempfile.TemporaryDirectory() as tmpdir:
            source = os.path.join(tmpdir, "source.bin")
            target = os.path.join(tmpdir, f"target{out_suffix}")
            with open(source, "wb") as f:
                f.write(audio)
            cmd = [self.binary, "-y", "-loglevel", "error", "-i", source, *args, target]
            try:
                subprocess.run(cmd, check=True, capture_output=True)
            except FileNotFoundError as exc:
                raise AudioProcessingError(f"{self.binary} executable not found") from exc
            except subprocess.CalledProcessError as exc:
                stderr = (exc.stderr or b"").decode("utf-8", errors="replace").strip()
                raise AudioProcessingError(f"ffmpeg exited with {exc.returncode}: {stderr}") from exc
            with open(target, "rb") as f:
                converted = f.read()
        self.log.debug(
            "audio transcoded",
            extra={"format": out_suffix, "input_bytes": len(audio), "output_bytes": len(converted)},
        )
        return converted
