import json

import pytest

from tilesamples.errors import InvalidArgument, UnsupportedTopology
from tilesamples.georef import build_frame, compose_scale
from tilesamples.tileset import (
    BoundingVolume,
    LodLevel,
    Refine,
    TileContent,
    TileNode,
    Tileset,
    build_discrete_lod_chain,
    build_instanced_pair,
)

BOX = BoundingVolume(box=(0, 0, 0, 7.0955, 0, 0, 0, 3.1405, 0, 0, 0, 5.0375))
REGION = BoundingVolume(region=(-1.3197, 0.6988, -1.3196, 0.6989, 0.0, 20.0))


def _dragon_levels():
    frame = compose_scale(build_frame(-75.6121, 40.0425, 503.75), 100.0)
    return [
        LodLevel("dragon_low.glb", BOX, 5.0, transform=frame),
        LodLevel("dragon_medium.glb", BOX, 1.0),
        LodLevel("dragon_high.glb", BOX, 0.1),
    ]


def _chain_errors(tileset):
    errors = [tileset.geometric_error]
    node = tileset.root
    while node is not None:
        errors.append(node.geometric_error)
        node = node.children[0] if node.children else None
    return errors


def test_discrete_lod_chain_errors():
    tileset = build_discrete_lod_chain(_dragon_levels())
    assert _chain_errors(tileset) == pytest.approx([500.0, 1.0, 0.1, 0.0])


def test_discrete_lod_chain_structure():
    tileset = build_discrete_lod_chain(_dragon_levels())
    root = tileset.root
    assert root.refine is Refine.REPLACE
    assert root.transform is not None
    assert root.content.uri == "dragon_low.glb"
    middle = root.children[0]
    leaf = middle.children[0]
    assert (middle.content.uri, leaf.content.uri) == ("dragon_medium.glb", "dragon_high.glb")
    assert middle.refine is None and leaf.refine is None
    assert middle.transform is None and leaf.transform is None
    assert leaf.children is None
    assert len(root.iter_paths()) == 1
    assert len(root.iter_paths()[0]) == 3


def test_levels_out_of_order_are_rejected():
    levels = [LodLevel("a.glb", BOX, 1.0), LodLevel("b.glb", BOX, 5.0)]
    with pytest.raises(UnsupportedTopology):
        build_discrete_lod_chain(levels)


def test_equal_level_errors_are_rejected():
    levels = [LodLevel("a.glb", BOX, 1.0), LodLevel("b.glb", BOX, 1.0)]
    with pytest.raises(UnsupportedTopology):
        build_discrete_lod_chain(levels)


def test_single_level_is_a_leaf_root():
    tileset = build_discrete_lod_chain([LodLevel("only.glb", BOX, 2.0)])
    assert tileset.geometric_error == 2.0
    assert tileset.root.geometric_error == 0.0
    assert tileset.root.refine is Refine.REPLACE


def test_empty_levels_are_rejected():
    with pytest.raises(InvalidArgument):
        build_discrete_lod_chain([])


def test_bounding_volume_needs_exactly_one_kind():
    with pytest.raises(InvalidArgument):
        BoundingVolume(region=REGION.region, box=BOX.box)
    with pytest.raises(InvalidArgument):
        BoundingVolume()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"box": (0.0,) * 11},
        {"sphere": (0.0, 0.0, 0.0, -1.0)},
        {"region": (0.0, 0.0, 0.1, 0.1, 10.0, 5.0)},
        {"region": (0.0, 0.0, 0.1, 0.1, 0.0, float("nan"))},
    ],
)
def test_malformed_bounding_volumes(kwargs):
    with pytest.raises(InvalidArgument):
        BoundingVolume(**kwargs)


def test_bounding_volume_from_json():
    volume = BoundingVolume.from_json({"sphere": [1, 2, 3, 4]})
    assert volume.kind == "sphere"
    assert volume.to_json() == {"sphere": [1.0, 2.0, 3.0, 4.0]}
    with pytest.raises(InvalidArgument):
        BoundingVolume.from_json({"cylinder": [1, 2]})


def test_child_must_be_more_accurate_than_parent():
    child = TileNode(BOX, 2.0)
    with pytest.raises(UnsupportedTopology):
        TileNode(BOX, 2.0, refine=Refine.REPLACE, children=(child,))


def test_zero_error_tile_cannot_have_children():
    with pytest.raises(UnsupportedTopology):
        TileNode(BOX, 0.0, children=(TileNode(BOX, 0.0),))


def test_empty_children_are_rejected():
    with pytest.raises(InvalidArgument):
        TileNode(BOX, 1.0, children=())


def test_negative_geometric_error_is_rejected():
    with pytest.raises(InvalidArgument):
        TileNode(BOX, -1.0)


def test_root_needs_refine():
    with pytest.raises(InvalidArgument):
        Tileset(asset_version="1.0", geometric_error=1.0, root=TileNode(BOX, 0.0))


def test_tileset_property_bounds_are_checked():
    root = TileNode(BOX, 0.0, refine=Refine.ADD)
    with pytest.raises(InvalidArgument):
        Tileset("1.0", 1.0, root, properties={"Height": {"minimum": 5.0, "maximum": 1.0}})


def test_required_extensions_must_be_used():
    root = TileNode(BOX, 0.0, refine=Refine.ADD)
    with pytest.raises(InvalidArgument):
        Tileset("1.0", 1.0, root, extensions_required=("3DTILES_content_gltf",))


def test_tileset_json_layout():
    root = TileNode(
        BOX,
        1.0,
        refine=Refine.REPLACE,
        content=TileContent("parent.glb"),
        viewer_request_volume=BoundingVolume(sphere=(0, 0, 0, 50)),
        children=(TileNode(BOX, 0.0, content=TileContent("child.glb")),),
        extras={"name": "parent"},
    )
    tileset = Tileset(
        "1.0",
        10.0,
        root,
        tileset_version="2",
        properties={"Height": {"minimum": 20.0, "maximum": 20.0}},
        extensions_used=("3DTILES_content_gltf",),
        extensions_required=("3DTILES_content_gltf",),
    )
    data = tileset.to_json()
    assert list(data) == ["asset", "properties", "geometricError", "root", "extensionsUsed", "extensionsRequired"]
    assert data["asset"] == {"version": "1.0", "tilesetVersion": "2"}
    assert data["root"]["viewerRequestVolume"] == {"sphere": [0.0, 0.0, 0.0, 50.0]}
    assert data["root"]["refine"] == "REPLACE"
    assert data["root"]["children"][0] == {"boundingVolume": BOX.to_json(), "geometricError": 0.0, "content": {"uri": "child.glb"}}
    assert data["root"]["extras"] == {"name": "parent"}
    json.dumps(data)


def test_instanced_pair():
    frame = build_frame(-75.6121, 40.0425)
    tileset = build_instanced_pair(
        near=LodLevel("tree.glb", REGION, 10.0),
        far=LodLevel("tree_billboard.glb", REGION, 100.0, transform=frame),
        property_statistics={"Height": {"minimum": 20.0, "maximum": 20.0}},
    )
    assert _chain_errors(tileset) == [100.0, 10.0, 0.0]
    data = tileset.to_json()
    assert data["properties"] == {"Height": {"minimum": 20.0, "maximum": 20.0}}
    assert data["root"]["content"] == {"uri": "tree_billboard.glb"}
    assert len(data["root"]["transform"]) == 16
    child = data["root"]["children"][0]
    assert child["content"] == {"uri": "tree.glb"}
    assert "transform" not in child
    assert "refine" not in child


def test_instanced_pair_needs_regions():
    with pytest.raises(InvalidArgument):
        build_instanced_pair(
            near=LodLevel("tree.glb", BOX, 10.0),
            far=LodLevel("tree_billboard.glb", REGION, 100.0),
            property_statistics={},
        )


def test_instanced_pair_needs_far_to_be_coarser():
    with pytest.raises(UnsupportedTopology):
        build_instanced_pair(
            near=LodLevel("tree.glb", REGION, 100.0),
            far=LodLevel("tree_billboard.glb", REGION, 10.0),
            property_statistics={},
        )


def test_top_level_error_covers_root():
    root = TileNode(BOX, 5.0, refine=Refine.REPLACE, children=(TileNode(BOX, 0.0),))
    with pytest.raises(UnsupportedTopology):
        Tileset("1.0", 1.0, root)


def test_chain_with_shrinking_frame_keeps_scaled_top_level_error():
    frame = compose_scale(build_frame(-75.6, 40.0, 0.0), 0.1)
    levels = [
        LodLevel("low.glb", BOX, 5.0, transform=frame),
        LodLevel("medium.glb", BOX, 1.0),
        LodLevel("high.glb", BOX, 0.1),
    ]
    tileset = build_discrete_lod_chain(levels)
    assert tileset.geometric_error == pytest.approx(0.5)
    assert tileset.root.geometric_error == 1.0


def test_top_level_error_covers_scaled_root():
    frame = compose_scale(build_frame(-75.6, 40.0, 0.0), 10.0)
    root = TileNode(BOX, 1.0, refine=Refine.REPLACE, transform=frame, children=(TileNode(BOX, 0.0),))
    with pytest.raises(UnsupportedTopology):
        Tileset("1.0", 5.0, root)
    assert Tileset("1.0", 20.0, root).geometric_error == 20.0
