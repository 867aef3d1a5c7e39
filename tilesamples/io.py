from __future__ import annotations

import gzip
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .glb import Asset, GlbError, decode_glb, decode_gltf, encode_glb, encode_gltf
from .tileset import Tileset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WriteOptions:
    pretty_print: bool = False
    compress: bool = False
    embed_binary_inline: bool = True


def ensure_dir(path: str | os.PathLike) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def _write_bytes(path: Path, data: bytes, options: WriteOptions) -> None:
    ensure_dir(path.parent)
    if options.compress:
        data = gzip.compress(data, mtime=0)
    path.write_bytes(data)
    logger.info("Wrote %s (%d bytes)", path, len(data))


def read_asset(path: str | os.PathLike) -> Asset:
    path = Path(path)
    if not path.is_file():
        raise GlbError(f"Input not found: {path}")
    data = path.read_bytes()
    suffix = path.suffix.lower()
    if suffix == ".glb":
        return decode_glb(data)
    if suffix == ".gltf":

        def resolve_uri(uri: str) -> bytes:
            buffer_path = path.parent / uri
            if not buffer_path.is_file():
                raise GlbError(f"Buffer not found: {buffer_path}")
            return buffer_path.read_bytes()

        return decode_gltf(data, resolve_uri=resolve_uri)
    raise GlbError(f"Unsupported asset extension: {path.suffix}")


def write_asset(directory: str | os.PathLike, filename: str, asset: Asset, options: WriteOptions) -> Path:
    directory = Path(directory)
    path = directory / filename
    suffix = path.suffix.lower()
    if suffix == ".glb":
        _write_bytes(path, encode_glb(asset), options)
    elif suffix == ".gltf":
        indent = 2 if options.pretty_print else None
        if options.embed_binary_inline or not asset.bin_chunk:
            _write_bytes(path, encode_gltf(asset, indent=indent), options)
        else:
            bin_name = path.with_suffix(".bin").name
            _write_bytes(directory / bin_name, bytes(asset.bin_chunk), options)
            _write_bytes(path, encode_gltf(asset, bin_uri=bin_name, indent=indent), options)
    else:
        raise GlbError(f"Unsupported asset extension: {path.suffix}")
    return path


def write_tileset(path: str | os.PathLike, tileset: Tileset, options: WriteOptions) -> Path:
    path = Path(path)
    text = json.dumps(tileset.to_json(), ensure_ascii=False, indent=2 if options.pretty_print else None) + "\n"
    _write_bytes(path, text.encode("utf-8"), options)
    return path
