"""
Object Locator.

Edge-based, center-weighted bounding box estimate used only to place
cosmetic overlays. Not a detector: there is no recognition, segmentation
or tracking across occlusion.
"""

from __future__ import annotations

import math
from typing import List, Optional, Tuple
import numpy as np
from numpy.typing import NDArray
import cv2
from loguru import logger

from talking_objects.core.contracts import Frame, ObjectBounds
from talking_objects.hashing.signal_hasher import downsample, luminance


class ObjectLocator:
    """
    Coarse object localization from a Sobel edge map.

    Pipeline:
    1. Downsample and convert to luminance
    2. Flag pixels whose 3x3 gradient magnitude exceeds a threshold
    3. Weight flagged pixels by closeness to the frame center, dropping
       those below a minimum centrality (likely background)
    4. Bounding box of the survivors plus weighted centroid, padded and
       clamped to the frame

    When too few edges qualify, a fixed central region (25-75% of each
    axis) is returned so callers always get usable geometry.
    """

    def __init__(
        self,
        scale: float = 0.5,
        edge_threshold: float = 50.0,
        min_centrality: float = 0.3,
        min_edge_weight: float = 10.0,
        padding: int = 20,
    ):
        """
        Initialize object locator.

        Args:
            scale: Downsample factor before edge detection
            edge_threshold: Gradient magnitude that flags an edge pixel
            min_centrality: Minimum center weight (0-1) for an edge to count
            min_edge_weight: Summed weight below which the fallback is used
            padding: Box padding in downsampled pixels
        """
        self.scale = scale
        self.edge_threshold = edge_threshold
        self.min_centrality = min_centrality
        self.min_edge_weight = min_edge_weight
        self.padding = padding

        self._bounds: Optional[ObjectBounds] = None

    def locate(self, frame: Frame) -> ObjectBounds:
        """
        Estimate the primary object's bounds in `frame`.

        Returns:
            ObjectBounds in source-frame pixel coordinates (never None)
        """
        small = downsample(frame.pixels, self.scale)
        gray = luminance(small)
        height, width = gray.shape

        bounds = None
        if height >= 3 and width >= 3:
            edges = self.detect_edges(gray)
            bounds = self._center_weighted_bounds(edges)

        if bounds is None:
            self._bounds = self.fallback_bounds(frame.width, frame.height)
            return self._bounds

        # Scale back to source-frame coordinates
        sx = frame.width / width
        sy = frame.height / height
        x, y, w, h, cx, cy = bounds
        self._bounds = ObjectBounds(
            x=x * sx,
            y=y * sy,
            width=w * sx,
            height=h * sy,
            center_x=cx * sx,
            center_y=cy * sy,
        )
        return self._bounds

    def detect_edges(self, gray: NDArray[np.float32]) -> NDArray[np.bool_]:
        """Binary edge map from horizontal and vertical 3x3 Sobel kernels."""
        gx = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=3)
        gy = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=3)
        edges = cv2.magnitude(gx, gy) > self.edge_threshold

        # Border pixels have no full 3x3 neighbourhood
        edges[0, :] = False
        edges[-1, :] = False
        edges[:, 0] = False
        edges[:, -1] = False
        return edges

    def _center_weighted_bounds(
        self,
        edges: NDArray[np.bool_],
    ) -> Optional[Tuple[float, float, float, float, float, float]]:
        height, width = edges.shape
        center_x = width / 2
        center_y = height / 2
        max_dist = math.hypot(center_x, center_y)

        ys, xs = np.nonzero(edges)
        if xs.size == 0:
            return None

        dist = np.hypot(xs - center_x, ys - center_y)
        weight = 1.0 - dist / max_dist
        keep = weight > self.min_centrality

        total_weight = float(weight[keep].sum())
        if total_weight < self.min_edge_weight:
            logger.debug(f"Locator: edge weight {total_weight:.1f} too low, using fallback")
            return None

        xs, ys, weight = xs[keep], ys[keep], weight[keep]
        centroid_x = float((xs * weight).sum() / total_weight)
        centroid_y = float((ys * weight).sum() / total_weight)

        min_x = max(0, int(xs.min()) - self.padding)
        min_y = max(0, int(ys.min()) - self.padding)
        max_x = min(width, int(xs.max()) + self.padding)
        max_y = min(height, int(ys.max()) + self.padding)

        return (
            float(min_x),
            float(min_y),
            float(max_x - min_x),
            float(max_y - min_y),
            centroid_x,
            centroid_y,
        )

    @staticmethod
    def fallback_bounds(frame_width: int, frame_height: int) -> ObjectBounds:
        """Fixed central region covering 25-75% of each axis."""
        return ObjectBounds(
            x=frame_width * 0.25,
            y=frame_height * 0.25,
            width=frame_width * 0.5,
            height=frame_height * 0.5,
            center_x=frame_width / 2,
            center_y=frame_height / 2,
        )

    def outline_points(self, count: int = 20) -> List[Tuple[float, float]]:
        """
        Points evenly spaced on the ellipse inscribed in the latest bounds.

        Decorative only; empty if nothing has been located yet.
        """
        if self._bounds is None or count <= 0:
            return []

        b = self._bounds
        half_w = b.width / 2
        half_h = b.height / 2
        mid_x = b.x + half_w
        mid_y = b.y + half_h

        points = []
        for i in range(count):
            angle = (i / count) * math.pi * 2
            points.append((mid_x + math.cos(angle) * half_w, mid_y + math.sin(angle) * half_h))
        return points

    @property
    def latest(self) -> Optional[ObjectBounds]:
        return self._bounds

    def reset(self):
        self._bounds = None
