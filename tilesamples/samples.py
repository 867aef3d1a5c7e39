from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np

from .buffers import append_buffer
from .errors import InvalidArgument, ReferentialIntegrityError
from .feature_metadata import (
    FeatureLayer,
    FeatureTable,
    add_feature_layer,
    add_feature_table,
    mark_feature_metadata_used,
    validate_feature_metadata,
)
from .georef import Frame, build_frame, compose_scale, region_from_footprint
from .glb import Asset
from .instancing import attach_instancing
from .placement import Anchor, generate_positions
from .statistics import concatenate_properties, derive_statistics
from .tileset import BoundingVolume, LodLevel, Tileset, build_discrete_lod_chain, build_instanced_pair

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SampleConfig:
    longitude: float = -75.6121
    latitude: float = 40.0425
    tile_width: float = 200.0
    asset_version: str = "1.0"
    use_glb: bool = True
    seed: int = 0

    @property
    def content_extension(self) -> str:
        return ".glb" if self.use_glb else ".gltf"


@dataclass
class SampleOutput:
    tileset: Tileset
    tiles: list[tuple[str, Asset]]


@dataclass
class Sample:
    sample_id: str
    name: str
    description: str
    source_files: tuple[str, ...] = ()

    def generate(self, assets: Sequence[Asset], config: SampleConfig) -> SampleOutput | None:
        """Build the tileset from ``assets``, decoded from ``source_files`` in order.

        The assets are mutated in place and returned as the tiles to write.
        Placeholders return None.
        """
        raise NotImplementedError

    def _expect_assets(self, assets: Sequence[Asset]) -> None:
        if len(assets) != len(self.source_files):
            raise InvalidArgument(
                f"{self.name} expects {len(self.source_files)} assets ({', '.join(self.source_files)}), got {len(assets)}"
            )


DRAGON_WIDTH = 14.191
DRAGON_HEIGHT = 10.075
DRAGON_DEPTH = 6.281
DRAGON_SCALE = 100.0

DRAGON_LOW_GEOMETRIC_ERROR = 5.0
DRAGON_MEDIUM_GEOMETRIC_ERROR = 1.0
DRAGON_HIGH_GEOMETRIC_ERROR = 0.1


class DiscreteLodSample(Sample):
    def __init__(self) -> None:
        super().__init__(
            "discrete-lod",
            "TilesetWithDiscreteLOD",
            "Dragon model at three levels of detail in a REPLACE chain",
            ("dragon_high.glb", "dragon_medium.glb", "dragon_low.glb"),
        )

    def generate(self, assets: Sequence[Asset], config: SampleConfig) -> SampleOutput | None:
        self._expect_assets(assets)
        ext = config.content_extension
        high, medium, low = assets

        dragon_box = BoundingVolume(
            box=(
                0.0, 0.0, 0.0,
                DRAGON_WIDTH / 2.0, 0.0, 0.0,
                0.0, DRAGON_DEPTH / 2.0, 0.0,
                0.0, 0.0, DRAGON_HEIGHT / 2.0,
            )
        )
        dragon_offset = (DRAGON_HEIGHT / 2.0) * DRAGON_SCALE
        dragon_frame = compose_scale(build_frame(config.longitude, config.latitude, dragon_offset), DRAGON_SCALE)

        levels = [
            LodLevel("dragon_low" + ext, dragon_box, DRAGON_LOW_GEOMETRIC_ERROR, transform=dragon_frame),
            LodLevel("dragon_medium" + ext, dragon_box, DRAGON_MEDIUM_GEOMETRIC_ERROR),
            LodLevel("dragon_high" + ext, dragon_box, DRAGON_HIGH_GEOMETRIC_ERROR),
        ]
        tileset = build_discrete_lod_chain(levels, asset_version=config.asset_version)
        tiles = [
            ("dragon_high" + ext, high),
            ("dragon_medium" + ext, medium),
            ("dragon_low" + ext, low),
        ]
        return SampleOutput(tileset=tileset, tiles=tiles)


TREES_COUNT = 25
TREES_HEIGHT = 20.0
TREE_GEOMETRIC_ERROR = 10.0
TREE_BILLBOARD_GEOMETRIC_ERROR = 100.0


def _first_mesh_node(asset: Asset) -> int:
    for index, node in enumerate(asset.gltf.get("nodes", [])):
        if node.get("mesh") is not None:
            return index
    raise ReferentialIntegrityError("Asset has no node with a mesh")


def add_instances_and_features(
    asset: Asset,
    *,
    instances: int,
    tile_width: float,
    model_size: float,
    frame: Frame,
    seed: int,
    anchor: Anchor,
) -> dict[str, list[float]]:
    """Instance ``asset`` over the tile and give every instance a ``Height`` feature."""
    node_index = _first_mesh_node(asset)
    mesh_index = asset.nodes[node_index]["mesh"]
    meshes = asset.gltf.get("meshes", [])
    if not (isinstance(mesh_index, int) and 0 <= mesh_index < len(meshes)) or not meshes[mesh_index].get("primitives"):
        raise ReferentialIntegrityError(f"Node {node_index} references a mesh without primitives")
    primitive = meshes[mesh_index]["primitives"][0]
    # Every check runs before the first write, so a failure leaves the asset untouched.
    validate_feature_metadata(asset)

    positions = generate_positions(instances, tile_width, model_size, frame, seed=seed, anchor=anchor)
    heights = [float(model_size)] * instances
    table = FeatureTable(feature_count=instances, properties={"Height": heights})
    accessor = append_buffer(asset, positions.astype(np.float32), name="instanceTranslation")
    attach_instancing(asset, node_index, {"TRANSLATION": accessor})

    mark_feature_metadata_used(asset)
    table_index = add_feature_table(asset, table)
    add_feature_layer(primitive, FeatureLayer(feature_table=table_index, instance_stride=1))
    logger.debug("Instanced node %d %d times with a Height feature table", node_index, instances)
    return {"Height": heights}


class TreeBillboardsSample(Sample):
    def __init__(self) -> None:
        super().__init__(
            "tree-billboards",
            "TilesetWithTreeBillboards",
            "Instanced trees that replace instanced billboards up close",
            ("tree.glb", "tree_billboard.glb"),
        )

    def generate(self, assets: Sequence[Asset], config: SampleConfig) -> SampleOutput | None:
        self._expect_assets(assets)
        ext = config.content_extension
        tree, billboard = assets

        tile_frame = build_frame(config.longitude, config.latitude, 0.0)
        region = BoundingVolume(
            region=tuple(region_from_footprint(config.longitude, config.latitude, config.tile_width, 0.0, TREES_HEIGHT))
        )

        placement: dict[str, Any] = dict(
            instances=TREES_COUNT,
            tile_width=config.tile_width,
            model_size=TREES_HEIGHT,
            frame=tile_frame,
            seed=config.seed,
        )
        # Same seed for both models: billboard i stands where tree i does.
        tree_features = add_instances_and_features(tree, anchor=Anchor.BASE, **placement)
        # The billboard is centred about its origin.
        billboard_features = add_instances_and_features(billboard, anchor=Anchor.CENTER, **placement)

        statistics = derive_statistics(concatenate_properties(tree_features, billboard_features))
        tileset = build_instanced_pair(
            near=LodLevel("tree" + ext, region, TREE_GEOMETRIC_ERROR),
            far=LodLevel("tree_billboard" + ext, region, TREE_BILLBOARD_GEOMETRIC_ERROR, transform=tile_frame),
            property_statistics=statistics,
            asset_version=config.asset_version,
        )
        tiles = [("tree" + ext, tree), ("tree_billboard" + ext, billboard)]
        return SampleOutput(tileset=tileset, tiles=tiles)


class RequestVolumeSample(Sample):
    def __init__(self) -> None:
        super().__init__(
            "request-volume",
            "TilesetWithRequestVolume",
            "Placeholder: content gated by a viewer request volume",
        )

    def generate(self, assets: Sequence[Asset], config: SampleConfig) -> SampleOutput | None:
        return None


class ExpireSample(Sample):
    def __init__(self) -> None:
        super().__init__(
            "expire",
            "TilesetWithExpiration",
            "Placeholder: content that expires and is re-requested",
        )

    def generate(self, assets: Sequence[Asset], config: SampleConfig) -> SampleOutput | None:
        return None


class SampleRegistry:
    def __init__(self) -> None:
        self._samples: dict[str, Sample] = {}

    def register(self, sample: Sample) -> None:
        if sample.sample_id in self._samples:
            raise InvalidArgument(f"Sample already registered: {sample.sample_id}")
        self._samples[sample.sample_id] = sample

    def get(self, sample_id: str) -> Sample:
        if sample_id not in self._samples:
            raise InvalidArgument(f"Unknown sample '{sample_id}'. Allowed: {', '.join(self.sample_ids())}")
        return self._samples[sample_id]

    def sample_ids(self) -> list[str]:
        return list(self._samples)

    def all_samples(self) -> list[Sample]:
        return list(self._samples.values())


def create_default_registry() -> SampleRegistry:
    registry = SampleRegistry()
    for sample in (DiscreteLodSample(), TreeBillboardsSample(), RequestVolumeSample(), ExpireSample()):
        registry.register(sample)
    return registry
