"""
Base class for frame sources.

To add a new source:
1. Inherit from FrameSource
2. Implement start/stop/capture_frame
3. Raise CaptureError from capture_frame when no frame is available

Example implementation:
    class StillImageSource(FrameSource):
        def __init__(self, path):
            self.path = path
            self.pixels = None

        def start(self) -> bool:
            bgr = cv2.imread(self.path)
            if bgr is None:
                return False
            self.pixels = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
            return True

        def stop(self) -> None:
            self.pixels = None

        def capture_frame(self) -> Frame:
            if self.pixels is None:
                raise CaptureError("Source is not running")
            return frame_from_pixels(self.pixels)
"""
from abc import ABC, abstractmethod
from typing import Tuple

from talking_objects.core.contracts import Frame


class FrameSource(ABC):
    """Abstract base class for still-frame sources.

    `capture_frame` must be synchronous and idempotent: calling it never
    changes the source's state beyond returning the latest still.
    """

    @abstractmethod
    def start(self) -> bool:
        """Open the device or stream.

        Returns:
            True if started successfully, False otherwise
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """Release the device or stream."""
        pass

    @abstractmethod
    def capture_frame(self) -> Frame:
        """Capture the current still.

        Returns:
            Frame with decoded pixels and encoded JPEG bytes

        Raises:
            CaptureError: if the source is not running or the read failed
        """
        pass

    @property
    def resolution(self) -> Tuple[int, int]:
        """Native (width, height); (0, 0) when unknown."""
        return (0, 0)
