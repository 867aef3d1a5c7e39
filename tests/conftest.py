"""Shared fixtures: tiny in-memory glTF assets."""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from tilesamples.glb import Asset, encode_glb


def make_triangle_asset(name: str = "triangle") -> Asset:
    positions = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]], dtype="<f4")
    indices = np.array([0, 1, 2], dtype="<u2")
    index_bytes = indices.tobytes()
    padded_index_bytes = index_bytes + b"\x00" * ((4 - len(index_bytes) % 4) % 4)
    bin_chunk = padded_index_bytes + positions.tobytes()

    gltf = {
        "asset": {"version": "2.0"},
        "scene": 0,
        "scenes": [{"nodes": [0]}],
        "nodes": [{"mesh": 0, "name": name}],
        "meshes": [{"primitives": [{"attributes": {"POSITION": 1}, "indices": 0}]}],
        "accessors": [
            {"bufferView": 0, "componentType": 5123, "count": 3, "type": "SCALAR"},
            {
                "bufferView": 1,
                "componentType": 5126,
                "count": 3,
                "type": "VEC3",
                "min": [0.0, 0.0, 0.0],
                "max": [1.0, 1.0, 0.0],
            },
        ],
        "bufferViews": [
            {"buffer": 0, "byteOffset": 0, "byteLength": len(index_bytes), "target": 34963},
            {"buffer": 0, "byteOffset": len(padded_index_bytes), "byteLength": positions.nbytes, "target": 34962},
        ],
        "buffers": [{"byteLength": len(bin_chunk)}],
    }
    return Asset.from_gltf(gltf, bin_chunk)


@pytest.fixture
def triangle_asset() -> Asset:
    return make_triangle_asset()


@pytest.fixture
def asset_factory():
    return make_triangle_asset


@pytest.fixture
def data_dir(tmp_path):
    """Directory holding every source model the default samples read."""
    directory = tmp_path / "data"
    directory.mkdir()
    for filename in ("dragon_high.glb", "dragon_medium.glb", "dragon_low.glb", "tree.glb", "tree_billboard.glb"):
        (directory / filename).write_bytes(encode_glb(make_triangle_asset(filename)))
    return directory
