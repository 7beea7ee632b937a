"""
OpenCV overlay.

Keeps the latest status, advisory, cue and bounds, and draws them onto
BGR frames for an OpenCV window. Drawing happens in `draw()`, called by
the display loop; the orchestrator only updates state.
"""

from __future__ import annotations

import time
from typing import Callable, List, Optional, Sequence, Tuple
import cv2
import numpy as np
from numpy.typing import NDArray

from talking_objects.core.contracts import Expression, ObjectBounds, PresentationCue
from .base import BaseOverlay


FONT = cv2.FONT_HERSHEY_SIMPLEX

EXPRESSION_COLORS = {
    Expression.HAPPY: (80, 220, 80),
    Expression.SURPRISED: (0, 220, 255),
    Expression.ANGRY: (60, 60, 230),
    Expression.FEARFUL: (230, 180, 90),
}


class CvOverlay(BaseOverlay):
    """Draws eyes, mouth, particles, the speech bubble and status text."""

    def __init__(
        self,
        expression_seconds: float = 5.0,
        flash_seconds: float = 0.3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.expression_seconds = expression_seconds
        self.flash_seconds = flash_seconds
        self._clock = clock

        self._status = ""
        self._message: Optional[str] = None
        self._message_until = 0.0
        self._cue: Optional[PresentationCue] = None
        self._cue_until = 0.0
        self._flash_until = 0.0
        self._bounds: Optional[ObjectBounds] = None
        self._outline: List[Tuple[float, float]] = []

    # ============================================================
    # STATE UPDATES
    # ============================================================

    def set_status(self, text: str):
        self._status = text

    def show_message(self, text: str, duration: float = 3.0):
        self._message = text
        self._message_until = self._clock() + duration

    def show_cue(self, cue: PresentationCue):
        self._cue = cue
        self._cue_until = self._clock() + self.expression_seconds
        if cue.bounds is not None:
            self._bounds = cue.bounds

    def flash_transition(self):
        self._flash_until = self._clock() + self.flash_seconds

    def update_bounds(self, bounds: ObjectBounds, outline: Sequence[Tuple[float, float]] = ()):
        self._bounds = bounds
        self._outline = list(outline)

    def clear(self):
        self._message = None
        self._cue = None
        self._bounds = None
        self._outline = []
        self._cue_until = 0.0
        self._flash_until = 0.0

    @property
    def expression_visible(self) -> bool:
        return self._cue is not None and self._clock() < self._cue_until

    # ============================================================
    # DRAWING
    # ============================================================

    def draw(self, frame: NDArray[np.uint8], source_size: Optional[Tuple[int, int]] = None):
        """
        Draw the overlay in place.

        Args:
            frame: BGR display frame
            source_size: (width, height) the bounds were computed in, if it
                differs from the display frame
        """
        h, w = frame.shape[:2]
        now = self._clock()

        if now < self._flash_until:
            white = np.full_like(frame, 255)
            cv2.addWeighted(white, 0.5, frame, 0.5, 0, frame)

        if self.expression_visible and self._bounds is not None:
            sx, sy = 1.0, 1.0
            if source_size and source_size[0] > 0 and source_size[1] > 0:
                sx, sy = w / source_size[0], h / source_size[1]
            self._draw_subject(frame, self._cue, self._bounds, sx, sy)

        self._draw_status(frame)

        if self._message and now < self._message_until:
            self._draw_centered(frame, self._message, h - 40, 0.7, (255, 255, 255))

    def _draw_subject(
        self,
        frame: NDArray[np.uint8],
        cue: PresentationCue,
        bounds: ObjectBounds,
        sx: float,
        sy: float,
    ):
        h, w = frame.shape[:2]
        color = EXPRESSION_COLORS.get(cue.expression, (255, 255, 255))
        scale = bounds.overlay_scale(int(w / sx), int(h / sy))

        # Particles around the outline
        for px, py in self._outline:
            cv2.circle(frame, (int(px * sx), int(py * sy)), max(2, int(3 * scale)), color, -1)

        ex, ey = bounds.eye_anchor()
        ex, ey = int(ex * sx), int(ey * sy)
        spacing = int(25 * scale)
        eye_radius = max(4, int(12 * scale))
        pupil_radius = max(2, int(eye_radius * (0.3 if cue.expression == Expression.FEARFUL else 0.5)))

        for dx in (-spacing, spacing):
            cv2.circle(frame, (ex + dx, ey), eye_radius, (255, 255, 255), -1)
            cv2.circle(frame, (ex + dx, ey), pupil_radius, (0, 0, 0), -1)

        if cue.expression == Expression.ANGRY:
            for dx, sign in ((-spacing, 1), (spacing, -1)):
                start = (ex + dx - eye_radius, ey - eye_radius - 4 - sign * 4)
                end = (ex + dx + eye_radius, ey - eye_radius - 4 + sign * 4)
                cv2.line(frame, start, end, (0, 0, 0), 3)

        self._draw_mouth(frame, cue.expression, (ex, ey + int(35 * scale)), scale, color)
        self._draw_bubble(frame, cue, (int(bounds.center_x * sx), int(bounds.y * sy)))

    def _draw_mouth(self, frame, expression: Expression, center: Tuple[int, int], scale: float, color):
        cx, cy = center
        size = max(6, int(18 * scale))

        if expression == Expression.HAPPY:
            cv2.ellipse(frame, (cx, cy), (size, size // 2), 0, 0, 180, color, 3)
        elif expression == Expression.SURPRISED:
            cv2.circle(frame, (cx, cy), size // 2, color, 3)
        elif expression == Expression.ANGRY:
            cv2.ellipse(frame, (cx, cy + size // 2), (size, size // 2), 0, 180, 360, color, 3)
        else:
            points = np.array(
                [[cx - size + i * size // 2, cy + (4 if i % 2 else -4)] for i in range(5)],
                dtype=np.int32,
            )
            cv2.polylines(frame, [points], False, color, 3)

    def _draw_bubble(self, frame, cue: PresentationCue, anchor: Tuple[int, int]):
        h, w = frame.shape[:2]
        text = cue.utterance if len(cue.utterance) <= 60 else cue.utterance[:57] + "..."
        (tw, th), _ = cv2.getTextSize(text, FONT, 0.6, 1)

        x = int(np.clip(anchor[0] - tw // 2, 10, max(10, w - tw - 10)))
        y = int(np.clip(anchor[1] - 20, th + 40, h - 10))

        overlay = frame.copy()
        cv2.rectangle(overlay, (x - 8, y - th - 32), (x + tw + 8, y + 8), (255, 255, 255), -1)
        cv2.addWeighted(overlay, 0.8, frame, 0.2, 0, frame)
        cv2.putText(frame, cue.subject_label.encode("ascii", "ignore").decode().strip(),
                    (x, y - th - 12), FONT, 0.5, (120, 60, 0), 1)
        cv2.putText(frame, text, (x, y), FONT, 0.6, (20, 20, 20), 1)

    def _draw_status(self, frame):
        if not self._status:
            return
        overlay = frame.copy()
        cv2.rectangle(overlay, (10, 10), (420, 40), (0, 0, 0), -1)
        cv2.addWeighted(overlay, 0.6, frame, 0.4, 0, frame)
        cv2.putText(frame, self._status, (20, 31), FONT, 0.6, (0, 255, 0), 1)

    def _draw_centered(self, frame, text: str, y: int, font_scale: float, color):
        (tw, _), _ = cv2.getTextSize(text, FONT, font_scale, 2)
        x = max(10, (frame.shape[1] - tw) // 2)
        cv2.putText(frame, text, (x, y), FONT, font_scale, (0, 0, 0), 4)
        cv2.putText(frame, text, (x, y), FONT, font_scale, color, 2)
