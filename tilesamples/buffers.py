from __future__ import annotations

import logging
from typing import Any

import numpy as np

from .errors import InvalidArgument, ReferentialIntegrityError
from .glb import Asset, GlbError

logger = logging.getLogger(__name__)

COMPONENT_TYPE_INT8 = 5120
COMPONENT_TYPE_UINT8 = 5121
COMPONENT_TYPE_INT16 = 5122
COMPONENT_TYPE_UINT16 = 5123
COMPONENT_TYPE_UINT32 = 5125
COMPONENT_TYPE_FLOAT32 = 5126

COMPONENT_TYPE_DTYPE: dict[int, np.dtype] = {
    COMPONENT_TYPE_INT8: np.dtype("<i1"),
    COMPONENT_TYPE_UINT8: np.dtype("<u1"),
    COMPONENT_TYPE_INT16: np.dtype("<i2"),
    COMPONENT_TYPE_UINT16: np.dtype("<u2"),
    COMPONENT_TYPE_UINT32: np.dtype("<u4"),
    COMPONENT_TYPE_FLOAT32: np.dtype("<f4"),
}

TYPE_COMPONENT_COUNT: dict[str, int] = {
    "SCALAR": 1,
    "VEC2": 2,
    "VEC3": 3,
    "VEC4": 4,
    "MAT3": 9,
    "MAT4": 16,
}

_COUNT_TO_TYPE = {count: name for name, count in TYPE_COMPONENT_COUNT.items()}

BUFFER_ALIGNMENT = 4


def _component_type_for(array: np.ndarray) -> int:
    dtype = array.dtype
    if dtype.kind == "f":
        return COMPONENT_TYPE_FLOAT32
    for component_type, candidate in COMPONENT_TYPE_DTYPE.items():
        if candidate.kind == dtype.kind and candidate.itemsize == dtype.itemsize:
            return component_type
    # Wide integers (numpy's default int64) are narrowed to UNSIGNED_INT when they fit.
    if array.min() >= 0 and array.max() <= np.iinfo(np.uint32).max:
        return COMPONENT_TYPE_UINT32
    raise InvalidArgument(f"Unsupported dtype for an accessor: {dtype}")


def append_buffer(asset: Asset, values: Any, *, name: str | None = None) -> int:
    """Append ``values`` to buffer 0 and return the index of a new accessor.

    Bytes already in the buffer are never moved, so every existing accessor
    keeps resolving to the same region.
    """
    array = np.asarray(values)
    if array.ndim == 1:
        array = array.reshape(-1, 1)
    if array.ndim != 2:
        raise InvalidArgument(f"Expected a 1D or 2D array, got shape {array.shape}")
    count, width = array.shape
    if count == 0:
        raise InvalidArgument("Cannot create an accessor with zero elements")
    if width not in _COUNT_TO_TYPE:
        raise InvalidArgument(f"Unsupported element width: {width}")
    if array.dtype.kind not in "fiu":
        raise InvalidArgument(f"Unsupported dtype for an accessor: {array.dtype}")
    if array.dtype.kind == "f" and not np.all(np.isfinite(array)):
        raise InvalidArgument("Accessor values must be finite")

    component_type = _component_type_for(array)
    packed = np.ascontiguousarray(array, dtype=COMPONENT_TYPE_DTYPE[component_type])
    data = packed.tobytes()

    buffer = asset.bin_chunk
    pad = (BUFFER_ALIGNMENT - (len(buffer) % BUFFER_ALIGNMENT)) % BUFFER_ALIGNMENT
    if pad:
        buffer.extend(b"\x00" * pad)
    byte_offset = len(buffer)
    buffer.extend(data)

    buffers = asset.gltf.setdefault("buffers", [])
    if not buffers:
        buffers.append({})
    buffers[0]["byteLength"] = len(buffer)

    buffer_view: dict[str, Any] = {"buffer": 0, "byteOffset": byte_offset, "byteLength": len(data)}
    if name is not None:
        buffer_view["name"] = name
    asset.buffer_views.append(buffer_view)

    accessor: dict[str, Any] = {
        "bufferView": len(asset.buffer_views) - 1,
        "byteOffset": 0,
        "componentType": component_type,
        "count": int(count),
        "type": _COUNT_TO_TYPE[width],
        "min": packed.min(axis=0).tolist(),
        "max": packed.max(axis=0).tolist(),
    }
    if name is not None:
        accessor["name"] = name
    asset.accessors.append(accessor)
    accessor_index = len(asset.accessors) - 1

    logger.debug(
        "Appended accessor %d (%s x %d) at byte offset %d",
        accessor_index,
        accessor["type"],
        count,
        byte_offset,
    )
    return accessor_index


def read_accessor(asset: Asset, accessor_index: int) -> np.ndarray:
    accessors = asset.gltf.get("accessors", [])
    if not (isinstance(accessor_index, int) and 0 <= accessor_index < len(accessors)):
        raise ReferentialIntegrityError(f"Accessor index out of range: {accessor_index}")
    accessor = accessors[accessor_index]
    if "sparse" in accessor:
        raise GlbError("Sparse accessors are not supported")

    component_type = accessor.get("componentType")
    if component_type not in COMPONENT_TYPE_DTYPE:
        raise GlbError(f"Unsupported accessor.componentType: {component_type}")
    element_type = accessor.get("type")
    if element_type not in TYPE_COMPONENT_COUNT:
        raise GlbError(f"Unsupported accessor.type: {element_type}")
    count = accessor.get("count")
    if not isinstance(count, int) or count <= 0:
        raise GlbError(f"Invalid accessor.count: {count}")

    buffer_view_index = accessor.get("bufferView")
    buffer_views = asset.gltf.get("bufferViews", [])
    if not (isinstance(buffer_view_index, int) and 0 <= buffer_view_index < len(buffer_views)):
        raise ReferentialIntegrityError(f"bufferView index out of range: {buffer_view_index}")
    buffer_view = buffer_views[buffer_view_index]

    dtype = COMPONENT_TYPE_DTYPE[component_type]
    width = TYPE_COMPONENT_COUNT[element_type]
    element_size = dtype.itemsize * width
    stride = buffer_view.get("byteStride", element_size)
    if not isinstance(stride, int) or stride < element_size:
        raise GlbError("Invalid bufferView.byteStride")

    base_offset = int(buffer_view.get("byteOffset", 0)) + int(accessor.get("byteOffset", 0))
    total_bytes_needed = base_offset + (count - 1) * stride + element_size
    if total_bytes_needed > len(asset.bin_chunk):
        raise GlbError("Accessor points outside the buffer")

    raw = np.frombuffer(bytes(asset.bin_chunk), dtype=np.uint8)
    rows = [raw[base_offset + i * stride : base_offset + i * stride + element_size] for i in range(count)]
    return np.concatenate(rows).view(dtype).reshape(count, width)
