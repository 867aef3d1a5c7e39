from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from .errors import InvalidArgument, UnsupportedTopology
from .georef import Frame

BOUNDING_VOLUME_LENGTHS: dict[str, int] = {
    "region": 6,
    "box": 12,
    "sphere": 4,
}


class Refine(str, enum.Enum):
    REPLACE = "REPLACE"
    ADD = "ADD"


def _check_error(value: float, name: str = "geometricError") -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgument(f"{name} must be a number")
    value = float(value)
    if not math.isfinite(value) or value < 0:
        raise InvalidArgument(f"{name} must be finite and >= 0, got {value}")
    return value


@dataclass(frozen=True)
class BoundingVolume:
    region: tuple[float, ...] | None = None
    box: tuple[float, ...] | None = None
    sphere: tuple[float, ...] | None = None

    def __post_init__(self) -> None:
        given = [(kind, getattr(self, kind)) for kind in BOUNDING_VOLUME_LENGTHS if getattr(self, kind) is not None]
        if len(given) != 1:
            names = ", ".join(kind for kind, _ in given) or "none"
            raise InvalidArgument(f"Bounding volume needs exactly one of region/box/sphere, got: {names}")
        kind, values = given[0]
        if len(values) != BOUNDING_VOLUME_LENGTHS[kind]:
            raise InvalidArgument(f"{kind} needs {BOUNDING_VOLUME_LENGTHS[kind]} numbers, got {len(values)}")
        numbers = tuple(float(v) for v in values)
        if not all(math.isfinite(v) for v in numbers):
            raise InvalidArgument(f"{kind} contains non-finite numbers")
        if kind == "region" and numbers[4] > numbers[5]:
            raise InvalidArgument("region minimum height exceeds maximum height")
        if kind == "sphere" and numbers[3] < 0:
            raise InvalidArgument("sphere radius must be >= 0")
        object.__setattr__(self, kind, numbers)

    @staticmethod
    def from_json(data: Mapping[str, Any]) -> "BoundingVolume":
        unknown = set(data) - set(BOUNDING_VOLUME_LENGTHS)
        if unknown:
            raise InvalidArgument(f"Unknown bounding volume keys: {sorted(unknown)}")
        return BoundingVolume(**{k: tuple(v) for k, v in data.items()})

    @property
    def kind(self) -> str:
        return next(k for k in BOUNDING_VOLUME_LENGTHS if getattr(self, k) is not None)

    def to_json(self) -> dict[str, list[float]]:
        return {self.kind: list(getattr(self, self.kind))}


@dataclass(frozen=True)
class TileContent:
    uri: str
    bounding_volume: BoundingVolume | None = None

    def __post_init__(self) -> None:
        if not self.uri:
            raise InvalidArgument("content uri must not be empty")

    def to_json(self) -> dict[str, Any]:
        content: dict[str, Any] = {"uri": self.uri}
        if self.bounding_volume is not None:
            content["boundingVolume"] = self.bounding_volume.to_json()
        return content


@dataclass(frozen=True)
class TileNode:
    """One tile of the hierarchy, validated when it is built.

    Children must be strictly more accurate than their parent, and a tile
    with zero geometric error is always a leaf.
    """

    bounding_volume: BoundingVolume
    geometric_error: float
    refine: Refine | None = None
    content: TileContent | None = None
    transform: Frame | None = None
    children: tuple["TileNode", ...] | None = None
    viewer_request_volume: BoundingVolume | None = None
    extras: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.bounding_volume, BoundingVolume):
            raise InvalidArgument("bounding_volume must be a BoundingVolume")
        object.__setattr__(self, "geometric_error", _check_error(self.geometric_error))
        if self.refine is not None:
            object.__setattr__(self, "refine", Refine(self.refine))
        if self.children is None:
            return
        children = tuple(self.children)
        if not children:
            raise InvalidArgument("children, when present, must not be empty")
        if self.geometric_error == 0:
            raise UnsupportedTopology("A tile with geometricError 0 cannot have children")
        for child in children:
            if child.geometric_error >= self.geometric_error:
                raise UnsupportedTopology(
                    f"Child geometricError {child.geometric_error} must be below parent {self.geometric_error}"
                )
        object.__setattr__(self, "children", children)

    def to_json(self) -> dict[str, Any]:
        node: dict[str, Any] = {}
        if self.transform is not None:
            node["transform"] = self.transform.to_list()
        node["boundingVolume"] = self.bounding_volume.to_json()
        if self.viewer_request_volume is not None:
            node["viewerRequestVolume"] = self.viewer_request_volume.to_json()
        node["geometricError"] = self.geometric_error
        if self.refine is not None:
            node["refine"] = self.refine.value
        if self.content is not None:
            node["content"] = self.content.to_json()
        if self.children:
            node["children"] = [child.to_json() for child in self.children]
        if self.extras:
            node["extras"] = dict(self.extras)
        return node

    def iter_paths(self) -> list[list["TileNode"]]:
        if not self.children:
            return [[self]]
        return [[self, *path] for child in self.children for path in child.iter_paths()]


@dataclass(frozen=True)
class Tileset:
    asset_version: str
    geometric_error: float
    root: TileNode
    tileset_version: str | None = None
    properties: Mapping[str, Mapping[str, float]] | None = None
    extensions_used: tuple[str, ...] = ()
    extensions_required: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.asset_version:
            raise InvalidArgument("asset_version must not be empty")
        object.__setattr__(self, "geometric_error", _check_error(self.geometric_error))
        if self.root.refine is None:
            raise InvalidArgument("The root tile must declare a refine policy")
        # The root error is scaled by its transform at runtime, the top-level value is not.
        root_scale = self.root.transform.uniform_scale() if self.root.transform is not None else 1.0
        root_error = self.root.geometric_error * root_scale
        if self.geometric_error < root_error:
            raise UnsupportedTopology(
                f"Top-level geometricError {self.geometric_error} is below the root's scaled error {root_error}"
            )
        for name, stats in (self.properties or {}).items():
            if set(stats) != {"minimum", "maximum"}:
                raise InvalidArgument(f"Property {name!r} needs exactly minimum and maximum")
            if stats["minimum"] > stats["maximum"]:
                raise InvalidArgument(f"Property {name!r} minimum exceeds maximum")
        missing = set(self.extensions_required) - set(self.extensions_used)
        if missing:
            raise InvalidArgument(f"Required extensions must also be used: {sorted(missing)}")

    def to_json(self) -> dict[str, Any]:
        asset: dict[str, Any] = {"version": self.asset_version}
        if self.tileset_version is not None:
            asset["tilesetVersion"] = self.tileset_version
        tileset: dict[str, Any] = {"asset": asset}
        if self.properties:
            tileset["properties"] = {name: dict(stats) for name, stats in self.properties.items()}
        tileset["geometricError"] = self.geometric_error
        tileset["root"] = self.root.to_json()
        if self.extensions_used:
            tileset["extensionsUsed"] = list(self.extensions_used)
        if self.extensions_required:
            tileset["extensionsRequired"] = list(self.extensions_required)
        return tileset


@dataclass(frozen=True)
class LodLevel:
    """One representation of the content; ``geometric_error`` is its own simplification error."""

    content_uri: str
    bounding_volume: BoundingVolume
    geometric_error: float
    transform: Frame | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "geometric_error", _check_error(self.geometric_error))


def _nest_levels(levels: Sequence[LodLevel], refine: Refine) -> TileNode:
    if not levels:
        raise InvalidArgument("At least one level is required")
    for coarser, finer in zip(levels, levels[1:]):
        if finer.geometric_error >= coarser.geometric_error:
            raise UnsupportedTopology(
                f"Levels must be ordered coarsest first with strictly decreasing error: "
                f"{coarser.content_uri} ({coarser.geometric_error}) then {finer.content_uri} ({finer.geometric_error})"
            )

    finest = levels[-1]
    node = TileNode(
        bounding_volume=finest.bounding_volume,
        geometric_error=0.0,
        refine=refine if len(levels) == 1 else None,
        content=TileContent(finest.content_uri),
        transform=finest.transform,
    )
    # A tile's error is the error of the level that refines it.
    for index in range(len(levels) - 2, -1, -1):
        level = levels[index]
        node = TileNode(
            bounding_volume=level.bounding_volume,
            geometric_error=levels[index + 1].geometric_error,
            refine=refine if index == 0 else None,
            content=TileContent(level.content_uri),
            transform=level.transform,
            children=(node,),
        )
    return node


def build_discrete_lod_chain(
    levels: Sequence[LodLevel],
    *,
    asset_version: str = "1.0",
    refine: Refine = Refine.REPLACE,
) -> Tileset:
    """Nest ``levels`` (coarsest first) into a discrete level-of-detail chain.

    A renderer scales every tile's geometric error by the tile's cumulative
    transform scale, but never the top-level value, so the top-level error is
    the coarsest level's error multiplied by that level's transform scale.
    """
    root = _nest_levels(levels, refine)
    coarsest = levels[0]
    scale = coarsest.transform.uniform_scale() if coarsest.transform is not None else 1.0
    return Tileset(
        asset_version=asset_version,
        geometric_error=coarsest.geometric_error * scale,
        root=root,
    )


def build_instanced_pair(
    near: LodLevel,
    far: LodLevel,
    property_statistics: Mapping[str, Mapping[str, float]],
    *,
    asset_version: str = "1.0",
) -> Tileset:
    for level in (near, far):
        if level.bounding_volume.region is None:
            raise InvalidArgument(f"{level.content_uri} must use a region bounding volume")
    root = _nest_levels([far, near], Refine.REPLACE)
    return Tileset(
        asset_version=asset_version,
        geometric_error=far.geometric_error,
        root=root,
        properties={name: dict(stats) for name, stats in property_statistics.items()},
    )
