from __future__ import annotations

from typing import Mapping

from .errors import InvalidArgument, ReferentialIntegrityError
from .glb import Asset, Extension

INSTANCING_SEMANTICS = frozenset({"TRANSLATION", "ROTATION", "SCALE"})


def attach_instancing(
    asset: Asset,
    node_index: int,
    attributes: Mapping[str, int],
    *,
    required: bool = False,
) -> dict[str, int]:
    nodes = asset.gltf.get("nodes", [])
    if not (isinstance(node_index, int) and 0 <= node_index < len(nodes)):
        raise ReferentialIntegrityError(f"Node index out of range: {node_index}")
    node = nodes[node_index]
    if node.get("mesh") is None:
        raise InvalidArgument(f"Node {node_index} has no mesh to instance")
    if not attributes:
        raise InvalidArgument("At least one instancing attribute is required")

    accessors = asset.gltf.get("accessors", [])
    counts = set()
    for semantic, accessor_index in attributes.items():
        if semantic not in INSTANCING_SEMANTICS and not semantic.startswith("_"):
            raise InvalidArgument(f"Unknown instancing semantic: {semantic}")
        if not (isinstance(accessor_index, int) and 0 <= accessor_index < len(accessors)):
            raise ReferentialIntegrityError(f"{semantic} references missing accessor {accessor_index}")
        counts.add(accessors[accessor_index].get("count"))
    if len(counts) > 1:
        raise InvalidArgument(f"Instancing accessors disagree on count: {sorted(counts)}")

    payload = {"attributes": dict(attributes)}
    node.setdefault("extensions", {})[Extension.MESH_GPU_INSTANCING.value] = payload
    asset.register_extension(Extension.MESH_GPU_INSTANCING, required=required)
    return payload
