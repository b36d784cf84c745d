from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
import numpy as np

from config import DetectorConfig


@dataclass(frozen=True)
class BoundingBox:
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def union(self, other: BoundingBox) -> BoundingBox:
        x = min(self.x, other.x)
        y = min(self.y, other.y)
        return BoundingBox(x, y, max(self.right, other.right) - x, max(self.bottom, other.bottom) - y)

    def scaled(self, scale_x: float, scale_y: float) -> BoundingBox:
        # truncates, so a box inside the working frame stays inside the source frame
        return BoundingBox(
            int(self.x * scale_x), int(self.y * scale_y),
            int(self.width * scale_x), int(self.height * scale_y),
        )

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)


@dataclass
class MotionResult:
    motion: bool
    mask: np.ndarray                 # 255 where the cell changed
    boxes: List[BoundingBox]         # working resolution
    score: float                     # fraction of changed cells
    source_boxes: List[BoundingBox] = field(default_factory=list)


def to_intensity(frame_bgr: np.ndarray) -> np.ndarray:
    """Average the three channels of each pixel into one byte, truncating."""
    return (frame_bgr.astype(np.uint16).sum(axis=2) // 3).astype(np.uint8)


def active_cells(current: np.ndarray, previous: np.ndarray, color_threshold: int) -> np.ndarray:
    if current.shape != previous.shape:
        raise ValueError(f"Matrix shapes differ: {current.shape} vs {previous.shape}")
    # int16 so the subtraction can go negative
    delta = current.astype(np.int16) - previous.astype(np.int16)
    return np.abs(delta) > color_threshold


def _regions_from_active(active: np.ndarray, row_aligned: bool) -> List[BoundingBox]:
    rows, cols = active.shape
    if row_aligned:
        # a trailing inactive column closes every run at its row end
        stride = cols + 1
        padded = np.zeros((rows, stride), dtype=bool)
        padded[:, :cols] = active
        stream = padded.ravel()
    else:
        stride = cols
        stream = active.ravel()

    edges = np.diff(np.concatenate(([0], stream.astype(np.int8), [0])))
    starts = np.flatnonzero(edges == 1)
    stops = np.flatnonzero(edges == -1)

    boxes: List[BoundingBox] = []
    for start, stop in zip(starts, stops):
        if stop == stream.size:
            # still open when the scan ended; never emitted
            continue
        first_row, first_col = divmod(int(start), stride)
        last_row, last_col = divmod(int(stop) - 1, stride)
        if first_row == last_row:
            boxes.append(BoundingBox(first_col, first_row, last_col - first_col + 1, 1))
        else:
            # the run wraps through column 0 and the last column
            boxes.append(BoundingBox(0, first_row, cols, last_row - first_row + 1))
    return boxes


def extract_regions(
    current: np.ndarray,
    previous: np.ndarray,
    color_threshold: int,
    row_aligned: bool = False,
) -> List[BoundingBox]:
    """
    Scan the intensity delta row-major and emit one box per run of changed cells.

    This is a run-merging heuristic rather than connected-component labelling.
    By default it reproduces the classic single-accumulator scan exactly:

    - a run is not closed at the end of a row, so a change touching the last
      column of row r and the first column of row r+1 yields one box spanning
      the full width of both rows;
    - a run still open after the last cell is dropped.

    With row_aligned=True every row closes its own runs, and the final run is
    emitted as well.
    """
    return _regions_from_active(active_cells(current, previous, color_threshold), row_aligned)


def _reaches(start: int, length: int, other_start: int, threshold: int) -> bool:
    return start - threshold < other_start < start + length + threshold


def are_neighbours(a: BoundingBox, b: BoundingBox, threshold: int) -> bool:
    """Threshold-expanded extents overlap on both axes, tested independently."""
    horizontal = _reaches(a.x, a.width, b.x, threshold) or _reaches(b.x, b.width, a.x, threshold)
    vertical = _reaches(a.y, a.height, b.y, threshold) or _reaches(b.y, b.height, a.y, threshold)
    return horizontal and vertical


def _first_neighbour_pair(boxes: Sequence[BoundingBox], threshold: int) -> Optional[Tuple[int, int]]:
    for i, a in enumerate(boxes):
        for j, b in enumerate(boxes):
            if i != j and are_neighbours(a, b, threshold):
                return i, j
    return None


def merge_regions(boxes: Sequence[BoundingBox], threshold: int) -> List[BoundingBox]:
    # first neighbour pair wins; the lower index absorbs the other, then rescan
    merged = list(boxes)
    pair = _first_neighbour_pair(merged, threshold)
    while pair is not None:
        i, j = pair
        merged[i] = merged[i].union(merged[j])
        del merged[j]
        pair = _first_neighbour_pair(merged, threshold)
    return merged


def filter_regions(boxes: Sequence[BoundingBox], min_size: int) -> List[BoundingBox]:
    return [b for b in boxes if b.width >= min_size and b.height >= min_size]


def detect_regions(current: np.ndarray, previous: np.ndarray, cfg: DetectorConfig) -> MotionResult:
    active = active_cells(current, previous, cfg.color_difference_threshold)

    boxes = _regions_from_active(active, cfg.row_aligned_regions)
    boxes = merge_regions(boxes, cfg.area_difference_threshold)
    boxes = filter_regions(boxes, cfg.min_bbox_size)

    mask = active.astype(np.uint8) * 255
    score = float(np.count_nonzero(active)) / float(active.size)

    return MotionResult(
        motion=len(boxes) > 0,
        mask=mask,
        boxes=boxes,
        score=score,
    )
