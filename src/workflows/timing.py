"""Timing rules for the final video render."""

import math
from dataclasses import dataclass

FPS = 25
SHORT_VIDEO_SECONDS = 20
LONG_VIDEO_SECONDS = 30
LONG_AUDIO_THRESHOLD = 20
MIN_PLAYBACK_RATE = 0.5
MAX_PLAYBACK_RATE = 2.0
RENDER_WORKERS = 9
MIN_FRAMES_PER_LAMBDA = 100


@dataclass
class RenderTiming:
    target_duration: int
    audio_padding: float
    playback_rate: float
    frames_per_lambda: int


def target_duration(audio_duration: float) -> int:
    return LONG_VIDEO_SECONDS if audio_duration > LONG_AUDIO_THRESHOLD else SHORT_VIDEO_SECONDS


def audio_padding(audio_duration: float, video_duration: float) -> float:
    """Lead-in silence that centres the voice-over in the video."""
    return max(0.0, (video_duration - audio_duration) / 2)


def playback_rate(video_duration: float, target: float) -> float:
    """Speed factor that fits the reel into the target duration, clamped to 0.5x-2x."""
    return max(MIN_PLAYBACK_RATE, min(video_duration / target, MAX_PLAYBACK_RATE))


def frames_per_lambda(target: float) -> int:
    frames = math.floor(target * FPS)
    return max(MIN_FRAMES_PER_LAMBDA, math.ceil(frames / RENDER_WORKERS))


def calculate_timing(audio_duration: float, video_duration: float) -> RenderTiming:
    target = target_duration(audio_duration)
    return RenderTiming(
        target_duration=target,
        audio_padding=audio_padding(audio_duration, target),
        playback_rate=playback_rate(video_duration, target),
        frames_per_lambda=frames_per_lambda(target),
    )
