"""
Media processors package.
"""

from .video import VideoTranscoder

__all__ = [
    "VideoTranscoder",
]
