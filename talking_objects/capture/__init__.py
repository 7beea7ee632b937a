"""
Capture Module.

Responsibilities:
- Still-frame acquisition from a camera
- JPEG encoding for fingerprints and inference
"""

from .base import FrameSource
from .video_capture import VideoCapture, encode_jpeg, frame_from_pixels
