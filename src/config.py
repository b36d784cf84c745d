from dataclasses import dataclass
import os
from typing import Optional, Tuple

import cv2


class InvalidConfiguration(ValueError):
    """Detector parameters that cannot produce a usable working resolution."""


def _default_working_width() -> int:
    env = os.getenv("MOTIONDETECTION_WORKING_WIDTH")
    if env:
        try:
            return int(env)
        except ValueError:
            raise InvalidConfiguration(f"MOTIONDETECTION_WORKING_WIDTH is not an integer: {env!r}") from None
    return 256

@dataclass
class DetectorConfig:
    # Change detection
    color_difference_threshold: int = 40   # |delta| must exceed this, 0-255 levels
    area_difference_threshold: int = 3     # neighbour slack in working pixels
    min_bbox_size: int = 8                 # drop boxes narrower or shorter than this

    # Working resolution
    working_width: Optional[int] = None    # None -> env / 256
    interpolation: int = cv2.INTER_LINEAR

    # Rendering (BGR)
    box_color: Tuple[int, int, int] = (0, 0, 255)
    box_thickness: int = 1

    # False reproduces the classic scan quirks, see motion.extract_regions
    row_aligned_regions: bool = False

    def __post_init__(self):
        if self.working_width is None:
            self.working_width = _default_working_width()

    def validate(self) -> "DetectorConfig":
        if self.color_difference_threshold < 0:
            raise InvalidConfiguration("color_difference_threshold must be >= 0")
        if self.area_difference_threshold < 0:
            raise InvalidConfiguration("area_difference_threshold must be >= 0")
        if self.min_bbox_size < 1:
            raise InvalidConfiguration("min_bbox_size must be >= 1")
        if self.working_width < 1:
            raise InvalidConfiguration("working_width must be >= 1")
        if self.box_thickness < 1:
            raise InvalidConfiguration("box_thickness must be >= 1")
        return self
