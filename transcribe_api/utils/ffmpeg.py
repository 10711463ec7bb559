"""
FFmpeg helpers
Media duration probing via ffprobe
"""

import asyncio
import math
import subprocess
from typing import Optional

from loguru import logger


class FFmpegHelper:
    """FFmpeg helper"""

    @staticmethod
    def check_ffprobe() -> bool:
        """Check whether ffprobe is installed"""
        try:
            subprocess.run(
                ["ffprobe", "-version"],
                check=True,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
            return True
        except (subprocess.CalledProcessError, FileNotFoundError):
            return False

    def get_duration_ms(self, media_path: str) -> Optional[int]:
        """
        Media duration in milliseconds

        Best-effort: any failure is logged and reported as None.

        Args:
            media_path: media file path

        Returns:
            duration in ms, or None if it could not be determined
        """
        cmd = [
            "ffprobe",
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            media_path,
        ]

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True)
            duration_sec = float(result.stdout.strip())
        except subprocess.CalledProcessError as e:
            logger.warning(f"Could not extract media duration: {e.stderr.strip()}")
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Could not extract media duration: {e}")
            return None

        if not math.isfinite(duration_sec) or duration_sec < 0:
            return None

        duration_ms = round(duration_sec * 1000)
        logger.info(f"Media duration: {duration_ms}ms ({media_path})")
        return duration_ms

    async def probe_duration_ms(self, media_path: str) -> Optional[int]:
        """Run get_duration_ms in a worker thread."""
        return await asyncio.to_thread(self.get_duration_ms, media_path)


def format_minutes(duration_ms: int) -> int:
    return round(duration_ms / 60000)


def describe_duration(duration_ms: int) -> str:
    """Whole hours read as hours ("2 hours"), anything else as minutes."""
    if duration_ms >= 3600000 and duration_ms % 3600000 == 0:
        hours = duration_ms // 3600000
        return f"{hours} hour" if hours == 1 else f"{hours} hours"
    minutes = format_minutes(duration_ms)
    return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
