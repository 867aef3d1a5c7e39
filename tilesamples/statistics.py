from __future__ import annotations

from typing import Mapping, Sequence

import numpy as np

from .errors import InvalidArgument


def derive_statistics(properties: Mapping[str, Sequence[float]]) -> dict[str, dict[str, float]]:
    """Minimum and maximum of each property array.

    Each array must already hold every value of that property across all
    feature tables; combining tables is up to the caller (see
    ``concatenate_properties``).
    """
    statistics: dict[str, dict[str, float]] = {}
    for name, values in properties.items():
        try:
            array = np.asarray(values, dtype=np.float64)
        except (TypeError, ValueError) as exc:
            raise InvalidArgument(f"Property {name!r} is not numeric: {exc}") from exc
        if array.size == 0:
            raise InvalidArgument(f"Property {name!r} has no values")
        if not np.all(np.isfinite(array)):
            raise InvalidArgument(f"Property {name!r} contains non-finite values")
        statistics[name] = {"minimum": float(array.min()), "maximum": float(array.max())}
    return statistics


def concatenate_properties(*tables: Mapping[str, Sequence[float]]) -> dict[str, list[float]]:
    merged: dict[str, list[float]] = {}
    for table in tables:
        for name, values in table.items():
            merged.setdefault(name, []).extend(np.asarray(values).tolist())
    return merged
