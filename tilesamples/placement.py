from __future__ import annotations

import enum
import logging
import math

import numpy as np

from .errors import InvalidArgument
from .georef import Frame

logger = logging.getLogger(__name__)

# Fraction of a grid cell a position may drift from the cell centre.
MAX_JITTER = 0.25


class Anchor(str, enum.Enum):
    CENTER = "center"
    BASE = "base"


def _finite(value: float, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, np.floating, np.integer)):
        raise InvalidArgument(f"{name} must be a number")
    value = float(value)
    if not math.isfinite(value):
        raise InvalidArgument(f"{name} must be finite")
    return value


def generate_positions(
    count: int,
    footprint_width: float,
    model_size: float,
    frame: Frame,
    *,
    seed: int = 0,
    anchor: Anchor = Anchor.CENTER,
) -> np.ndarray:
    """Spread ``count`` instance translations over a square tile footprint.

    Positions sit on a cell-centred grid of ``ceil(sqrt(count))`` columns,
    each nudged by at most a quarter cell with a seeded generator, so they
    never coincide and never leave ``[-W/2, W/2]``. Instances are lifted by
    half of ``model_size`` so geometry centred on its origin stays above the
    ground plane; models whose origin is already at their base
    (``Anchor.BASE``) stay at height 0. Footprint and size are metres; the
    result is expressed in the frame's local units (metres divided by the
    frame's uniform scale). The ``[-W/2, W/2]`` bound holds in metres, so in
    local units it becomes ``[-W/2s, W/2s]`` for a frame of scale ``s``.
    """
    if isinstance(count, bool) or not isinstance(count, (int, np.integer)):
        raise InvalidArgument("count must be an integer")
    if count < 0:
        raise InvalidArgument(f"count must be >= 0, got {count}")
    footprint_width = _finite(footprint_width, "footprint_width")
    model_size = _finite(model_size, "model_size")
    if footprint_width <= 0:
        raise InvalidArgument(f"footprint_width must be > 0, got {footprint_width}")
    if model_size < 0:
        raise InvalidArgument(f"model_size must be >= 0, got {model_size}")
    if count == 0:
        return np.zeros((0, 3), dtype=np.float64)

    columns = math.ceil(math.sqrt(count))
    rows = math.ceil(count / columns)
    cell = np.array([footprint_width / columns, footprint_width / rows])

    index = np.arange(count)
    grid = np.stack([index % columns, index // columns], axis=1).astype(np.float64)
    horizontal = (grid + 0.5) * cell - footprint_width / 2.0

    rng = np.random.default_rng(seed)
    horizontal += rng.uniform(-MAX_JITTER, MAX_JITTER, size=(count, 2)) * cell
    half = footprint_width / 2.0
    np.clip(horizontal, -half, half, out=horizontal)

    lift = model_size / 2.0 if Anchor(anchor) is Anchor.CENTER else 0.0
    vertical = np.full((count, 1), lift)
    positions = np.concatenate([horizontal, vertical], axis=1)

    scale = frame.uniform_scale()
    if scale <= 0:
        raise InvalidArgument("frame has a degenerate scale")
    positions /= scale

    logger.debug("Placed %d instances on a %dx%d grid (width=%g)", count, columns, rows, footprint_width)
    return positions
