"""
3D Tiles sample generator.

Builds small georeferenced tilesets: glTF assets augmented with GPU instancing
and feature metadata, plus the tileset.json hierarchy that references them.
"""

from .errors import InvalidArgument, ReferentialIntegrityError, TilesetSampleError, UnsupportedTopology
from .georef import Frame, build_frame, compose_scale, region_from_footprint
from .glb import Asset, Extension, GlbError, decode_glb, decode_gltf, encode_glb, encode_gltf
from .placement import Anchor, generate_positions
from .buffers import append_buffer, read_accessor
from .instancing import attach_instancing
from .feature_metadata import (
    FeatureLayer,
    FeatureTable,
    add_feature_layer,
    add_feature_table,
    mark_feature_metadata_used,
    validate_feature_metadata,
)
from .statistics import concatenate_properties, derive_statistics
from .tileset import (
    BoundingVolume,
    LodLevel,
    Refine,
    TileContent,
    TileNode,
    Tileset,
    build_discrete_lod_chain,
    build_instanced_pair,
)
from .samples import Sample, SampleConfig, SampleOutput, SampleRegistry, create_default_registry

__version__ = "0.1.0"

__all__ = [
    "TilesetSampleError",
    "InvalidArgument",
    "ReferentialIntegrityError",
    "UnsupportedTopology",
    "GlbError",
    "Frame",
    "build_frame",
    "compose_scale",
    "region_from_footprint",
    "Asset",
    "Extension",
    "decode_glb",
    "decode_gltf",
    "encode_glb",
    "encode_gltf",
    "Anchor",
    "generate_positions",
    "append_buffer",
    "read_accessor",
    "attach_instancing",
    "FeatureLayer",
    "FeatureTable",
    "add_feature_layer",
    "add_feature_table",
    "mark_feature_metadata_used",
    "validate_feature_metadata",
    "concatenate_properties",
    "derive_statistics",
    "BoundingVolume",
    "LodLevel",
    "Refine",
    "TileContent",
    "TileNode",
    "Tileset",
    "build_discrete_lod_chain",
    "build_instanced_pair",
    "Sample",
    "SampleConfig",
    "SampleOutput",
    "SampleRegistry",
    "create_default_registry",
]
