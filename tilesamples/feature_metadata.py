from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import numpy as np

from .errors import InvalidArgument, ReferentialIntegrityError
from .glb import Asset, Extension

EXTENSION_NAME = Extension.FEATURE_METADATA.value


@dataclass(frozen=True)
class FeatureTable:
    feature_count: int
    properties: Mapping[str, Sequence[Any]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.feature_count, bool) or not isinstance(self.feature_count, int):
            raise InvalidArgument("feature_count must be an integer")
        if self.feature_count < 0:
            raise InvalidArgument(f"feature_count must be >= 0, got {self.feature_count}")
        for name, values in self.properties.items():
            if len(values) != self.feature_count:
                raise InvalidArgument(
                    f"Property {name!r} has {len(values)} values, expected {self.feature_count}"
                )

    def to_json(self) -> dict[str, Any]:
        return {
            "featureCount": self.feature_count,
            "properties": {name: {"values": np.asarray(values).tolist()} for name, values in self.properties.items()},
        }


@dataclass(frozen=True)
class FeatureLayer:
    """Binds a primitive to a feature table.

    Feature ids come either from an explicit vertex ``attribute`` or, when no
    attribute is named, from the implicit sequence ``start + i * increment``.
    """

    feature_table: int
    instance_stride: int = 1
    implicit_start: int = 0
    implicit_increment: int = 1
    attribute: str | None = None

    def __post_init__(self) -> None:
        if self.feature_table < 0:
            raise InvalidArgument(f"feature_table must be >= 0, got {self.feature_table}")
        if self.instance_stride < 0:
            raise InvalidArgument(f"instance_stride must be >= 0, got {self.instance_stride}")
        if self.attribute is not None and not self.attribute:
            raise InvalidArgument("attribute name must not be empty")

    def to_json(self) -> dict[str, Any]:
        if self.attribute is not None:
            vertex_attribute: dict[str, Any] = {"attribute": self.attribute}
        else:
            vertex_attribute = {"implicit": {"start": self.implicit_start, "increment": self.implicit_increment}}
        return {
            "featureTable": self.feature_table,
            "instanceStride": self.instance_stride,
            "vertexAttribute": vertex_attribute,
        }


def mark_feature_metadata_used(asset: Asset) -> None:
    asset.register_extension(Extension.FEATURE_METADATA)


def add_feature_layer(primitive: dict[str, Any], layer: FeatureLayer) -> int:
    layers = primitive.setdefault("extensions", {}).setdefault(EXTENSION_NAME, {}).setdefault("featureLayers", [])
    for existing in layers:
        if existing.get("featureTable") == layer.feature_table:
            raise InvalidArgument(f"Primitive already has a feature layer for table {layer.feature_table}")
    layers.append(layer.to_json())
    return len(layers) - 1


def add_feature_table(asset: Asset, table: FeatureTable) -> int:
    tables = asset.gltf.setdefault("extensions", {}).setdefault(EXTENSION_NAME, {}).setdefault("featureTables", [])
    tables.append(table.to_json())
    return len(tables) - 1


def validate_feature_metadata(asset: Asset) -> None:
    tables = asset.gltf.get("extensions", {}).get(EXTENSION_NAME, {}).get("featureTables", [])
    for mesh_index, mesh in enumerate(asset.gltf.get("meshes", [])):
        for primitive_index, primitive in enumerate(mesh.get("primitives", [])):
            extension = primitive.get("extensions", {}).get(EXTENSION_NAME)
            if extension is None:
                continue
            for layer in extension.get("featureLayers", []):
                table_index = layer.get("featureTable")
                if not (isinstance(table_index, int) and 0 <= table_index < len(tables)):
                    raise ReferentialIntegrityError(
                        f"Mesh {mesh_index} primitive {primitive_index} references missing feature table {table_index}"
                    )
                attribute = layer.get("vertexAttribute", {}).get("attribute")
                if attribute is not None and attribute not in primitive.get("attributes", {}):
                    raise ReferentialIntegrityError(
                        f"Mesh {mesh_index} primitive {primitive_index} references missing attribute {attribute}"
                    )
