from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from .errors import InvalidArgument, TilesetSampleError
from .glb import Asset
from .io import WriteOptions, ensure_dir, read_asset, write_asset, write_tileset
from .samples import Sample, SampleConfig, SampleRegistry

logger = logging.getLogger(__name__)

TILESET_FILENAME = "tileset.json"


@dataclass
class SampleResult:
    sample_id: str
    name: str
    status: str
    files: list[Path] = field(default_factory=list)
    error: str | None = None


class SampleGenerator:
    def __init__(
        self,
        registry: SampleRegistry,
        config: SampleConfig | None = None,
        options: WriteOptions | None = None,
    ) -> None:
        self.registry = registry
        self.config = config or SampleConfig()
        self.options = options or WriteOptions()

    def load_assets(self, sample: Sample, data_dir: Path) -> list[Asset]:
        # Decoded in source order: tile i of a sample is built from source file i.
        return [read_asset(Path(data_dir) / filename) for filename in sample.source_files]

    def generate_sample(self, sample: Sample, output_root: str | Path, data_dir: str | Path) -> SampleResult:
        try:
            assets = self.load_assets(sample, Path(data_dir))
            output = sample.generate(assets, self.config)
        except TilesetSampleError as exc:
            logger.error("Sample %s failed: %s: %s", sample.name, type(exc).__name__, exc)
            return SampleResult(sample.sample_id, sample.name, "failed", error=f"{type(exc).__name__}: {exc}")

        if output is None:
            logger.warning("Sample %s has no content yet; skipping", sample.name)
            return SampleResult(sample.sample_id, sample.name, "skipped")

        directory = Path(output_root) / "Samples" / sample.name
        ensure_dir(directory)
        files = [write_tileset(directory / TILESET_FILENAME, output.tileset, self.options)]
        for uri, asset in output.tiles:
            files.append(write_asset(directory, uri, asset, self.options))
        logger.info("Sample %s written to %s", sample.name, directory)
        return SampleResult(sample.sample_id, sample.name, "written", files=files)

    def generate(
        self,
        output_root: str | Path,
        data_dir: str | Path,
        sample_ids: Sequence[str] | None = None,
        jobs: int = 1,
    ) -> list[SampleResult]:
        if jobs < 1:
            raise InvalidArgument(f"jobs must be >= 1, got {jobs}")
        samples = [self.registry.get(s) for s in sample_ids] if sample_ids else self.registry.all_samples()
        ensure_dir(output_root)

        if jobs == 1:
            return [self.generate_sample(sample, output_root, data_dir) for sample in samples]
        # Every sample decodes its own assets, so samples never share mutable state.
        with ThreadPoolExecutor(max_workers=jobs) as pool:
            return list(pool.map(lambda s: self.generate_sample(s, output_root, data_dir), samples))
