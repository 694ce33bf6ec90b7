from typing import List

from quietcutter.core.config import settings
from quietcutter.models.files import OutputFormat


def build_silence_filter(threshold_db: int, min_silence_ms: int) -> str:
    """
    two-pass silenceremove graph

    the first pass trims leading silence, the second removes every silence run
    at least min_silence_ms long. both compare peak level against the threshold.
    """
    stop_duration = min_silence_ms / 1000
    start_trim = (
        f"silenceremove=start_periods=1:start_duration=0"
        f":start_threshold={threshold_db}dB:detection=peak"
    )
    normalize = "aformat=sample_fmts=s16:sample_rates=44100"
    stop_trim = (
        f"silenceremove=start_periods=0:start_duration=0"
        f":stop_periods=-1:stop_duration={stop_duration:g}"
        f":stop_threshold={threshold_db}dB:detection=peak"
    )
    return ",".join([start_trim, normalize, stop_trim])


def codec_args(output_format: OutputFormat) -> List[str]:
    output_format = OutputFormat(output_format)
    if output_format == OutputFormat.MP3:
        return ["-c:a", "libmp3lame", "-b:a", settings.MP3_BITRATE]
    if output_format == OutputFormat.WAV:
        return ["-c:a", "pcm_s16le"]
    return ["-c:a", "flac"]


def silence_removal_args(input_path: str, output_path: str, threshold_db: int,
                         min_silence_ms: int, output_format: OutputFormat) -> List[str]:
    return [
        "-i", input_path,
        "-vn",
        "-af", build_silence_filter(threshold_db, min_silence_ms),
        *codec_args(output_format),
        "-y",
        output_path,
    ]


def audio_extraction_args(video_path: str, output_path: str) -> List[str]:
    # pcm 16-bit at a fixed rate and layout, lossless intermediate
    return [
        "-i", video_path,
        "-vn",
        "-acodec", "pcm_s16le",
        "-ar", str(settings.EXTRACT_SAMPLE_RATE),
        "-ac", str(settings.EXTRACT_CHANNELS),
        "-y",
        output_path,
    ]
