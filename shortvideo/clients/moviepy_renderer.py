from __future__ import annotations

import logging
import os
import pathlib
import shutil
import subprocess
import tempfile
from typing import Any, Optional, Sequence

import httpx
import numpy as np
from moviepy import AudioFileClip, CompositeAudioClip, VideoFileClip, afx, concatenate_videoclips, vfx
from moviepy.audio.AudioClip import AudioArrayClip, concatenate_audioclips
from proglog import ProgressBarLogger

from shortvideo.clients.base import ProgressCallback
from shortvideo.models.domain import (
    MUSIC_VOLUME_LEVELS,
    CaptionPosition,
    MusicTrack,
    MusicVolume,
    Orientation,
    RenderConfig,
    ResolvedScene,
)
from shortvideo.services.captions import pages_to_srt, scene_caption_pages

LAYOUTS = {
    Orientation.PORTRAIT: (1080, 1920),
    Orientation.LANDSCAPE: (1920, 1080),
}

ASS_ALIGNMENT = {
    CaptionPosition.TOP: 8,
    CaptionPosition.CENTER: 5,
    CaptionPosition.BOTTOM: 2,
}

AUDIO_FPS = 44100
# share of the progress bar spent encoding; the rest is the caption burn-in pass
ENCODE_SHARE = 0.9


class _EncodeProgressLogger(ProgressBarLogger):
    def __init__(self, on_progress: ProgressCallback, share: float) -> None:
        super().__init__()
        self._on_progress = on_progress
        self._share = share

    def bars_callback(self, bar, attr, value, old_value=None):
        if bar != "frame_index" or attr != "index":
            return
        total = self.bars[bar].get("total") or 0
        if total:
            self._on_progress(min(1.0, value / total) * self._share)


class MoviePyRenderer:
    def __init__(
        self,
        fps: int = 25,
        ffmpeg_binary: str = "ffmpeg",
        caption_max_chars: int = 24,
        download_timeout: float = 60.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.fps = fps
        self.ffmpeg_binary = ffmpeg_binary
        self.caption_max_chars = caption_max_chars
        self.download_timeout = download_timeout
        self.log = logger or logging.getLogger(__name__)

    def render(
        self,
        scenes: Sequence[ResolvedScene],
        music: Optional[MusicTrack],
        config: RenderConfig,
        on_progress: ProgressCallback,
    ) -> str:
        ordered = sorted(scenes, key=lambda item: item.index)
        if not ordered:
            raise ValueError("nothing to render")
        workdir = tempfile.mkdtemp(prefix="short-video-")
        try:
            encoded_path = self._encode(ordered, music, config, workdir, on_progress)
            final_path = self._burn_captions(encoded_path, ordered, config, workdir)
        except Exception:
            shutil.rmtree(workdir, ignore_errors=True)
            raise
        on_progress(1.0)
        return final_path

    def _encode(
        self,
        scenes: Sequence[ResolvedScene],
        music: Optional[MusicTrack],
        config: RenderConfig,
        workdir: str,
        on_progress: ProgressCallback,
    ) -> str:
        width, height = LAYOUTS[config.orientation]
        padding_s = config.padding_back_ms / 1000.0
        resources: list[Any] = []
        try:
            scene_clips = []
            for position, scene in enumerate(scenes):
                is_last = position == len(scenes) - 1
                scene_clip = self._build_scene_clip(
                    scene,
                    width,
                    height,
                    padding_s if is_last else 0.0,
                    workdir,
                    resources,
                )
                scene_clips.append(scene_clip)
            video = concatenate_videoclips(scene_clips, method="chain")
            total = video.duration
            music_clip = self._build_music_clip(music, config, total, workdir, resources)
            if music_clip is not None:
                video = video.with_audio(CompositeAudioClip([video.audio, music_clip]).with_duration(total))
            output_path = os.path.join(workdir, "encoded.mp4")
            self.log.info(
                "rendering video",
                extra={
                    "scenes": len(scenes),
                    "duration": total,
                    "orientation": config.orientation.value,
                    "has_music": music_clip is not None,
                },
            )
            video.write_videofile(
                output_path,
                fps=self.fps,
                codec="libx264",
                audio_codec="aac",
                audio_fps=AUDIO_FPS,
                logger=_EncodeProgressLogger(on_progress, ENCODE_SHARE),
                ffmpeg_params=["-pix_fmt", "yuv420p"],
            )
            video.close()
            return output_path
        finally:
            for resource in resources:
                try:
                    resource.close()
                except Exception:  # pragma: no cover
                    self.log.debug("clip close failed", exc_info=True)

    def _build_scene_clip(
        self,
        scene: ResolvedScene,
        width: int,
        height: int,
        padding_s: float,
        workdir: str,
        resources: list[Any],
    ):
        narration_s = scene.duration_ms / 1000.0
        target_s = narration_s + padding_s
        footage_path = self._download(scene.footage.url, workdir, f"footage-{scene.index + 1}.mp4")
        source = VideoFileClip(footage_path, audio=False)
        resources.append(source)
        clip = self._cover(source, width, height)
        if clip.duration < target_s:
            clip = clip.with_effects([vfx.Loop(duration=target_s)])
        else:
            clip = clip.subclipped(0, target_s)

        audio_path = os.path.join(workdir, f"scene-audio-{scene.index + 1}.mp3")
        with open(audio_path, "wb") as f:
            f.write(scene.audio)
        voice = AudioFileClip(audio_path)
        resources.append(voice)
        voice = voice.subclipped(0, min(voice.duration, narration_s))
        if padding_s > 0:
            samples = max(int(padding_s * AUDIO_FPS), 1)
            silence = AudioArrayClip(np.zeros((samples, 2), dtype=np.float32), fps=AUDIO_FPS)
            voice = concatenate_audioclips([voice, silence])
        return clip.with_audio(voice).with_duration(target_s)

    def _cover(self, clip, width: int, height: int):
        scale = max(width / clip.w, height / clip.h)
        resized = clip.resized(scale)
        return resized.cropped(
            x_center=resized.w / 2,
            y_center=resized.h / 2,
            width=width,
            height=height,
        )

    def _build_music_clip(
        self,
        music: Optional[MusicTrack],
        config: RenderConfig,
        total_s: float,
        workdir: str,
        resources: list[Any],
    ):
        if music is None or config.music_volume == MusicVolume.MUTED:
            return None
        music_path = self._prepare_music_file(music, workdir)
        if not music_path:
            return None
        track = AudioFileClip(music_path)
        resources.append(track)
        start_s = music.start_ms / 1000.0
        end_s = min(music.end_ms / 1000.0, track.duration)
        layer = track.subclipped(start_s, end_s) if end_s > start_s else track
        if layer.duration < total_s:
            layer = layer.with_effects([afx.AudioLoop(duration=total_s)])
        else:
            layer = layer.subclipped(0, total_s)
        return layer.with_volume_scaled(MUSIC_VOLUME_LEVELS[config.music_volume])

    def _prepare_music_file(self, music: MusicTrack, workdir: str) -> str | None:
        candidate = music.source.strip()
        if candidate.lower().startswith(("http://", "https://")):
            try:
                suffix = pathlib.Path(candidate).suffix or ".mp3"
                return self._download(candidate, workdir, f"soundtrack{suffix}")
            except httpx.HTTPError as exc:
                self.log.warning(
                    "soundtrack download failed",
                    extra={"track": music.name, "soundtrack_url": candidate},
                    exc_info=exc,
                )
                return None
        if os.path.isfile(candidate):
            return candidate
        self.log.warning("soundtrack file missing", extra={"track": music.name, "path": candidate})
        return None

    def _download(self, url: str, workdir: str, filename: str) -> str:
        timeout = httpx.Timeout(
            connect=10.0,
            read=self.download_timeout,
            write=10.0,
            pool=self.download_timeout,
        )
        path = os.path.join(workdir, filename)
        with httpx.stream("GET", url, timeout=timeout, follow_redirects=True) as resp:
            resp.raise_for_status()
            with open(path, "wb") as f:
                for chunk in resp.iter_bytes():
                    if chunk:
                        f.write(chunk)
        return path

    def _burn_captions(
        self,
        encoded_path: str,
        scenes: Sequence[ResolvedScene],
        config: RenderConfig,
        workdir: str,
    ) -> str:
        pages = scene_caption_pages(scenes, max_chars=self.caption_max_chars)
        if not pages:
            final_path = os.path.join(workdir, "final.mp4")
            os.replace(encoded_path, final_path)
            return final_path
        subs_path = os.path.join(workdir, "captions.srt")
        with open(subs_path, "w", encoding="utf-8") as f:
            f.write(pages_to_srt(pages))
        final_path = os.path.join(workdir, "final.mp4")
        subs_posix = pathlib.Path(subs_path).as_posix()
        vf = f"subtitles='{subs_posix}':force_style='{self._force_style(config)}'"
        cmd = [
            self.ffmpeg_binary,
            "-y",
            "-loglevel",
            "error",
            "-i",
            encoded_path,
            "-vf",
            vf,
            "-c:v",
            "libx264",
            "-pix_fmt",
            "yuv420p",
            "-c:a",
            "copy",
            final_path,
        ]
        result = subprocess.run(cmd, capture_output=True)
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise RuntimeError(f"caption burn-in failed ({result.returncode}): {stderr}")
        os.remove(encoded_path)
        return final_path

    def _force_style(self, config: RenderConfig) -> str:
        width, _ = LAYOUTS[config.orientation]
        font_size = 18 if width < 1920 else 14
        box = self._ass_color(config.background_hex())
        parts = [
            "Fontname=Arial",
            f"Fontsize={font_size}",
            "Bold=-1",
            "PrimaryColour=&H00FFFFFF",
            "BorderStyle=3",
            f"OutlineColour={box}",
            f"BackColour={box}",
            "Outline=2",
            "Shadow=0",
            f"Alignment={ASS_ALIGNMENT[config.caption_position]}",
            "MarginV=40",
        ]
        return ",".join(parts)

    def _ass_color(self, value: str) -> str:
        hex_value = value.lstrip("#")
        if len(hex_value) != 6:
            return "&H00FFFFFF"
        r = hex_value[0:2]
        g = hex_value[2:4]
        b = hex_value[4:6]
        return f"&H00{b}{g}{r}"
