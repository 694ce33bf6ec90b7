import subprocess
import json
import logging
from typing import Optional

from quietcutter.core.config import settings

logger = logging.getLogger(__name__)

PROBE_TIMEOUT_SEC = 30


def get_media_duration(file_path: str, ffprobe_bin: str = settings.FFPROBE_BIN) -> Optional[float]:
    """
    Probes a media file's duration in seconds using ffprobe.
    Returns None when the duration can't be obtained; callers treat that as unknown.
    """
    cmd = [
        ffprobe_bin,
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        file_path
    ]

    try:
        result = subprocess.run(
            cmd, capture_output=True, text=True, check=True, timeout=PROBE_TIMEOUT_SEC
        )
        data = json.loads(result.stdout)
        duration = data.get("format", {}).get("duration")
        if duration is None:
            logger.warning(f"no duration reported for {file_path}")
            return None
        duration_sec = float(duration)
        return duration_sec if duration_sec > 0 else None
    except (subprocess.SubprocessError, OSError, ValueError) as e:
        logger.warning(f"error probing file {file_path}: {e}")
        return None


class MediaInspector:
    """ffprobe wrapper handed to the silence-removal job"""

    def __init__(self, ffprobe_bin: Optional[str] = None):
        self.ffprobe_bin = ffprobe_bin or settings.FFPROBE_BIN

    def probe_duration(self, file_path: str) -> Optional[float]:
        return get_media_duration(file_path, ffprobe_bin=self.ffprobe_bin)
