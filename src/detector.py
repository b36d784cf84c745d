from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Iterable, Optional, Tuple
import logging

import cv2
import numpy as np

from config import DetectorConfig, InvalidConfiguration
from motion import BoundingBox, MotionResult, detect_regions, to_intensity

logger = logging.getLogger(__name__)

__all__ = [
    "DetectorState",
    "DimensionMismatch",
    "FrameNotWritable",
    "InvalidConfiguration",
    "MotionDetector",
    "render_boxes",
]


class DimensionMismatch(ValueError):
    """Frame shape does not match the size the detector was created for."""


class FrameNotWritable(ValueError):
    """Frame cannot be drawn on in place (read-only or not C-contiguous)."""


@dataclass
class DetectorState:
    """
    Per-stream state carried between frames.

    Create one per video stream at its source resolution and call reset() when
    the stream restarts. previous is None until the first frame has been seen
    (cold); after that it is replaced, never mutated, on every frame (warm).
    """
    source_width: int
    source_height: int
    working_width: int
    working_height: int
    scale_x: float                   # source / working
    scale_y: float
    frame_rate: float = 0.0          # kept for consumers, unused here
    buffer: Optional[np.ndarray] = None
    previous: Optional[np.ndarray] = None

    @classmethod
    def create(cls, source_width: int, source_height: int, frame_rate: float, working_width: int) -> DetectorState:
        if source_width <= 0 or source_height <= 0:
            raise InvalidConfiguration(f"Source size must be positive, got {source_width}x{source_height}")
        if working_width <= 0:
            raise InvalidConfiguration(f"Working width must be positive, got {working_width}")

        # width / aspect ratio, truncated
        working_height = working_width * source_height // source_width
        if working_height <= 0:
            raise InvalidConfiguration(
                f"Source {source_width}x{source_height} is too wide for a working width of {working_width}"
            )

        return cls(
            source_width=source_width,
            source_height=source_height,
            working_width=working_width,
            working_height=working_height,
            scale_x=source_width / working_width,
            scale_y=source_height / working_height,
            frame_rate=frame_rate,
        )

    @property
    def working_size(self) -> Tuple[int, int]:
        return (self.working_width, self.working_height)

    @property
    def is_warm(self) -> bool:
        return self.previous is not None

    def reset(self):
        self.previous = None

    def check_frame(self, frame: np.ndarray, drawable: bool = False):
        expected = (self.source_height, self.source_width, 3)
        shape = getattr(frame, "shape", None)
        if shape is None or tuple(shape) != expected:
            raise DimensionMismatch(f"Expected frame of shape {expected}, got {shape}")
        if drawable and not (frame.flags.c_contiguous and frame.flags.writeable):
            raise FrameNotWritable("Frame must be a writeable C-contiguous array to draw on")

    def preprocess(self, frame: np.ndarray, interpolation: int) -> np.ndarray:
        # resize into the same working buffer every call
        self.buffer = cv2.resize(frame, self.working_size, dst=self.buffer, interpolation=interpolation)
        return to_intensity(self.buffer)


def render_boxes(frame: np.ndarray, boxes: Iterable[BoundingBox], color, thickness: int = 1):
    for box in boxes:
        cv2.rectangle(frame, (box.x, box.y), (box.right, box.bottom), color, thickness)


class MotionDetector:
    def __init__(self, source_width: int, source_height: int, frame_rate: float,
                 cfg: Optional[DetectorConfig] = None):
        self.cfg = (cfg or DetectorConfig()).validate()
        self.state = DetectorState.create(source_width, source_height, frame_rate, self.cfg.working_width)
        logger.info(
            "Motion detector %dx%d -> working %dx%d (fps=%.2f)",
            source_width, source_height, self.state.working_width, self.state.working_height, frame_rate,
        )

    @property
    def is_warm(self) -> bool:
        return self.state.is_warm

    def reset(self):
        self.state.reset()
        logger.info("Motion detector reset")

    def to_source(self, box: BoundingBox) -> BoundingBox:
        return box.scaled(self.state.scale_x, self.state.scale_y)

    def detect(self, frame: np.ndarray) -> MotionResult:
        """
        frame: BGR numpy array (H, W, 3) at the source resolution.
        Compares it against the previous frame and returns the motion boxes,
        both in working and source coordinates. The first frame only primes
        the detector and never reports motion.
        """
        self.state.check_frame(frame)

        current = self.state.preprocess(frame, self.cfg.interpolation)
        previous = self.state.previous
        self.state.previous = current

        if previous is None:
            logger.debug("First frame, priming detector")
            return MotionResult(False, np.zeros_like(current), [], 0.0)

        res = detect_regions(current, previous, self.cfg)
        res = replace(res, source_boxes=[self.to_source(b) for b in res.boxes])
        logger.debug("Motion boxes: %d | score=%.4f", len(res.boxes), res.score)
        return res

    def process_frame(self, frame: np.ndarray) -> None:
        """Detect motion and draw its boxes onto frame in place."""
        self.state.check_frame(frame, drawable=True)
        res = self.detect(frame)
        render_boxes(frame, res.source_boxes, self.cfg.box_color, self.cfg.box_thickness)
