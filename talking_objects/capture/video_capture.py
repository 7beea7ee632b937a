"""
Webcam Capture.

Handles:
- Webcam acquisition through OpenCV
- Downscaling to a maximum analysis width
- JPEG encoding of each captured still
"""

from __future__ import annotations

import time
import threading
from typing import Optional, Tuple
import numpy as np
from numpy.typing import NDArray
import cv2
from loguru import logger

from talking_objects.core.contracts import Frame
from talking_objects.core.errors import CaptureError
from .base import FrameSource


def encode_jpeg(pixels: NDArray[np.uint8], quality: int = 80) -> bytes:
    """Encode an RGB buffer as JPEG bytes."""
    bgr = cv2.cvtColor(pixels, cv2.COLOR_RGB2BGR)
    ok, buffer = cv2.imencode(".jpg", bgr, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise CaptureError("JPEG encoding failed")
    return buffer.tobytes()


def frame_from_pixels(
    pixels: NDArray[np.uint8],
    timestamp_ms: Optional[float] = None,
    frame_id: int = 0,
    quality: int = 80,
) -> Frame:
    """Build a Frame from an RGB buffer, encoding it on the way."""
    return Frame(
        pixels=pixels,
        encoded=encode_jpeg(pixels, quality),
        timestamp_ms=time.time() * 1000 if timestamp_ms is None else timestamp_ms,
        frame_id=frame_id,
    )


class VideoCapture(FrameSource):
    """
    OpenCV webcam source producing analysis-sized stills.

    Guarantees:
    - RGB pixel output
    - Frames no wider than `max_width` (aspect ratio preserved)
    - Thread-safe access to the device
    """

    def __init__(
        self,
        device_index: int = 0,
        width: int = 1280,
        height: int = 720,
        fps: int = 30,
        max_width: int = 800,
        jpeg_quality: int = 80,
    ):
        """
        Initialize video capture.

        Args:
            device_index: Camera device index
            width: Requested capture width
            height: Requested capture height
            fps: Requested frames per second
            max_width: Stills wider than this are downscaled
            jpeg_quality: JPEG quality for the encoded still (0-100)
        """
        self.device_index = device_index
        self.width = width
        self.height = height
        self.fps = fps
        self.max_width = max_width
        self.jpeg_quality = jpeg_quality

        self._capture: Optional[cv2.VideoCapture] = None
        self._is_running = False
        self._lock = threading.Lock()
        self._frame_count: int = 0

    def start(self) -> bool:
        if self._is_running:
            return True

        self._capture = cv2.VideoCapture(self.device_index)
        if not self._capture.isOpened():
            logger.error(f"Failed to open camera {self.device_index}")
            self._capture = None
            return False

        self._capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        self._capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._capture.set(cv2.CAP_PROP_FPS, self.fps)
        self._capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        actual_width, actual_height = self.resolution
        actual_fps = self._capture.get(cv2.CAP_PROP_FPS)
        logger.info(f"Video capture started: {actual_width}x{actual_height} @ {actual_fps}fps")

        self._is_running = True
        return True

    def stop(self):
        self._is_running = False

        with self._lock:
            if self._capture is not None:
                self._capture.release()
                self._capture = None

        logger.info("Video capture stopped")

    def capture_frame(self) -> Frame:
        """
        Read the current still.

        Returns:
            Frame no wider than `max_width`, with JPEG bytes attached

        Raises:
            CaptureError: camera not running or read failed
        """
        if not self._is_running or self._capture is None:
            raise CaptureError("Camera is not active")

        with self._lock:
            ret, bgr = self._capture.read()
            if not ret or bgr is None:
                raise CaptureError("Failed to read frame")
            self._frame_count += 1
            frame_id = self._frame_count

        rgb = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)

        height, width = rgb.shape[:2]
        scale = min(self.max_width / width, 1.0)
        if scale < 1.0:
            rgb = cv2.resize(
                rgb,
                (int(width * scale), int(height * scale)),
                interpolation=cv2.INTER_AREA,
            )

        return frame_from_pixels(
            rgb,
            timestamp_ms=time.time() * 1000,
            frame_id=frame_id,
            quality=self.jpeg_quality,
        )

    def read_preview(self) -> Optional[NDArray[np.uint8]]:
        """Read a BGR frame for display only; None if unavailable."""
        if not self._is_running or self._capture is None:
            return None

        with self._lock:
            ret, bgr = self._capture.read()
        return bgr if ret else None

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def resolution(self) -> Tuple[int, int]:
        """Get actual capture size (width, height)."""
        if self._capture is not None:
            return (
                int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
                int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            )
        return (self.width, self.height)
