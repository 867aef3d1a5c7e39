import gzip
import json
import logging

import pytest

from tilesamples.cli import main, parse_args
from tilesamples.errors import InvalidArgument
from tilesamples.generator import TILESET_FILENAME, SampleGenerator
from tilesamples.glb import decode_glb, decode_gltf
from tilesamples.io import WriteOptions, read_asset
from tilesamples.samples import SampleConfig, create_default_registry


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def _results_by_id(results):
    return {result.sample_id: result for result in results}


def test_generate_all_samples(tmp_path, data_dir):
    output = tmp_path / "out"
    results = _results_by_id(SampleGenerator(create_default_registry()).generate(output, data_dir))

    assert results["discrete-lod"].status == "written"
    assert results["tree-billboards"].status == "written"
    assert results["request-volume"].status == "skipped"
    assert results["expire"].status == "skipped"

    lod_dir = output / "Samples" / "TilesetWithDiscreteLOD"
    tileset = json.loads((lod_dir / TILESET_FILENAME).read_text())
    assert tileset["root"]["content"]["uri"] == "dragon_low.glb"
    for name in ("dragon_high.glb", "dragon_medium.glb", "dragon_low.glb"):
        assert (lod_dir / name).is_file()

    tree = decode_glb((output / "Samples" / "TilesetWithTreeBillboards" / "tree.glb").read_bytes())
    assert "EXT_mesh_gpu_instancing" in tree.nodes[0]["extensions"]
    assert not (output / "Samples" / "TilesetWithRequestVolume").exists()


def test_generate_selected_sample(tmp_path, data_dir):
    results = SampleGenerator(create_default_registry()).generate(tmp_path, data_dir, sample_ids=["tree-billboards"])
    assert [r.sample_id for r in results] == ["tree-billboards"]
    assert len(results[0].files) == 3


def test_gltf_with_external_buffers(tmp_path, data_dir):
    generator = SampleGenerator(
        create_default_registry(),
        config=SampleConfig(use_glb=False),
        options=WriteOptions(pretty_print=True, embed_binary_inline=False),
    )
    generator.generate(tmp_path, data_dir, sample_ids=["discrete-lod"])
    directory = tmp_path / "Samples" / "TilesetWithDiscreteLOD"
    text = (directory / "dragon_high.gltf").read_text()
    assert json.loads(text)["buffers"][0]["uri"] == "dragon_high.bin"
    assert (directory / "dragon_high.bin").is_file()
    assert read_asset(directory / "dragon_high.gltf").bin_chunk
    assert (directory / TILESET_FILENAME).read_text().startswith("{\n  ")


def test_inline_gltf(tmp_path, data_dir):
    generator = SampleGenerator(create_default_registry(), config=SampleConfig(use_glb=False))
    generator.generate(tmp_path, data_dir, sample_ids=["tree-billboards"])
    directory = tmp_path / "Samples" / "TilesetWithTreeBillboards"
    asset = decode_gltf((directory / "tree.gltf").read_bytes())
    assert asset.gltf["extensions"]["EXT_feature_metadata"]["featureTables"][0]["featureCount"] == 25
    assert not list(directory.glob("*.bin"))


def test_gzip_output(tmp_path, data_dir):
    generator = SampleGenerator(create_default_registry(), options=WriteOptions(compress=True))
    generator.generate(tmp_path, data_dir, sample_ids=["discrete-lod"])
    raw = (tmp_path / "Samples" / "TilesetWithDiscreteLOD" / TILESET_FILENAME).read_bytes()
    assert raw[:2] == b"\x1f\x8b"
    assert json.loads(gzip.decompress(raw))["asset"]["version"] == "1.0"


def test_missing_source_fails_only_that_sample(tmp_path, data_dir):
    (data_dir / "tree.glb").unlink()
    results = _results_by_id(SampleGenerator(create_default_registry()).generate(tmp_path / "out", data_dir))
    assert results["tree-billboards"].status == "failed"
    assert results["tree-billboards"].error.startswith("GlbError:")
    assert results["discrete-lod"].status == "written"


def test_parallel_generation_matches_serial(tmp_path, data_dir):
    registry = create_default_registry()
    SampleGenerator(registry).generate(tmp_path / "serial", data_dir)
    results = SampleGenerator(registry).generate(tmp_path / "parallel", data_dir, jobs=2)
    assert [r.sample_id for r in results] == registry.sample_ids()
    for name in ("TilesetWithDiscreteLOD", "TilesetWithTreeBillboards"):
        for path in (tmp_path / "serial" / "Samples" / name).iterdir():
            assert (tmp_path / "parallel" / "Samples" / name / path.name).read_bytes() == path.read_bytes()


def test_jobs_must_be_positive(tmp_path, data_dir):
    with pytest.raises(InvalidArgument):
        SampleGenerator(create_default_registry()).generate(tmp_path, data_dir, jobs=0)


def test_cli_success(tmp_path, data_dir, restore_logging):
    code = main(["--output", str(tmp_path / "out"), "--data-dir", str(data_dir), "--log-level", "warning", "--pretty"])
    assert code == 0
    assert (tmp_path / "out" / "Samples" / "TilesetWithTreeBillboards" / TILESET_FILENAME).is_file()


def test_cli_reports_failures(tmp_path, data_dir, restore_logging, capsys):
    (data_dir / "dragon_low.glb").unlink()
    code = main(["--output", str(tmp_path), "--data-dir", str(data_dir), "--sample", "discrete-lod", "--log-level", "WARNING"])
    assert code == 1
    assert "TilesetWithDiscreteLOD" in capsys.readouterr().err


def test_cli_options():
    args = parse_args(["--gltf", "--external-buffers", "--gzip", "--seed", "3", "--sample", "expire", "--sample", "discrete-lod"])
    assert args.gltf and args.external_buffers and args.gzip
    assert args.seed == 3
    assert args.samples == ["expire", "discrete-lod"]
    assert args.log_level == "INFO"


def test_cli_rejects_unknown_sample():
    with pytest.raises(SystemExit):
        parse_args(["--sample", "nope"])


def test_cli_rejects_non_finite_coordinates():
    with pytest.raises(SystemExit):
        parse_args(["--latitude", "nan"])
