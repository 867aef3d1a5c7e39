from __future__ import annotations

import base64
import copy
import enum
import json
import struct
from dataclasses import dataclass, field
from typing import Any, Callable

from .errors import TilesetSampleError


GLB_MAGIC = b"glTF"
GLB_VERSION_SUPPORTED = 2

CHUNK_TYPE_JSON = 0x4E4F534A  # b"JSON"
CHUNK_TYPE_BIN = 0x004E4942  # b"BIN\0"

DATA_URI_PREFIX = "data:application/octet-stream;base64,"


class GlbError(TilesetSampleError):
    pass


class Extension(str, enum.Enum):
    MESH_GPU_INSTANCING = "EXT_mesh_gpu_instancing"
    FEATURE_METADATA = "EXT_feature_metadata"


_KNOWN_EXTENSIONS = {ext.value: ext for ext in Extension}


@dataclass
class Asset:
    """A decoded glTF document and the bytes of its single buffer.

    Known extensions live in the typed registries and are only turned back
    into wire names by ``to_gltf``; unknown names stay in ``gltf`` untouched.
    """

    gltf: dict[str, Any]
    bin_chunk: bytearray = field(default_factory=bytearray)
    extensions_used: set[Extension] = field(default_factory=set)
    extensions_required: set[Extension] = field(default_factory=set)

    @staticmethod
    def from_gltf(gltf: dict[str, Any], bin_chunk: bytes = b"") -> "Asset":
        if not isinstance(gltf, dict):
            raise GlbError("glTF root is not an object")
        gltf = copy.deepcopy(gltf)
        buffers = gltf.get("buffers", [])
        if len(buffers) > 1:
            raise GlbError("Only single-buffer assets are supported")
        if buffers:
            buffers[0].pop("uri", None)
            buffers[0]["byteLength"] = len(bin_chunk)

        used = _split_extensions(gltf, "extensionsUsed")
        required = _split_extensions(gltf, "extensionsRequired")
        asset = Asset(gltf=gltf, bin_chunk=bytearray(bin_chunk), extensions_used=used, extensions_required=required)
        _check_buffer_views(asset)
        return asset

    @property
    def accessors(self) -> list[dict[str, Any]]:
        return self.gltf.setdefault("accessors", [])

    @property
    def buffer_views(self) -> list[dict[str, Any]]:
        return self.gltf.setdefault("bufferViews", [])

    @property
    def nodes(self) -> list[dict[str, Any]]:
        return self.gltf.setdefault("nodes", [])

    @property
    def meshes(self) -> list[dict[str, Any]]:
        return self.gltf.setdefault("meshes", [])

    def register_extension(self, extension: Extension, *, required: bool = False) -> None:
        self.extensions_used.add(extension)
        if required:
            self.extensions_required.add(extension)

    def to_gltf(self) -> dict[str, Any]:
        gltf = copy.deepcopy(self.gltf)
        for key, registry in (("extensionsUsed", self.extensions_used), ("extensionsRequired", self.extensions_required)):
            names = list(gltf.get(key, []))
            names.extend(sorted(ext.value for ext in registry if ext.value not in names))
            if names:
                gltf[key] = names
            else:
                gltf.pop(key, None)
        if self.bin_chunk:
            buffers = gltf.setdefault("buffers", [{}])
            buffers[0]["byteLength"] = len(self.bin_chunk)
        return gltf


def _split_extensions(gltf: dict[str, Any], key: str) -> set[Extension]:
    names = gltf.pop(key, [])
    if not isinstance(names, list):
        raise GlbError(f"Invalid {key}, expected a list")
    known = {_KNOWN_EXTENSIONS[n] for n in names if n in _KNOWN_EXTENSIONS}
    unknown = [n for n in names if n not in _KNOWN_EXTENSIONS]
    if unknown:
        gltf[key] = unknown
    return known


def _check_buffer_views(asset: Asset) -> None:
    buffer_views = asset.gltf.get("bufferViews", [])
    for index, buffer_view in enumerate(buffer_views):
        if buffer_view.get("buffer", 0) != 0:
            raise GlbError("Only buffer 0 is supported")
        end = int(buffer_view.get("byteOffset", 0)) + int(buffer_view.get("byteLength", 0))
        if end > len(asset.bin_chunk):
            raise GlbError(f"bufferView {index} points outside the buffer")
    for index, accessor in enumerate(asset.gltf.get("accessors", [])):
        view = accessor.get("bufferView")
        if view is not None and not (isinstance(view, int) and 0 <= view < len(buffer_views)):
            raise GlbError(f"Accessor {index} references missing bufferView {view}")


def decode_glb(data: bytes) -> Asset:
    if len(data) < 12:
        raise GlbError("Invalid GLB: file too small")

    magic, version, total_length = struct.unpack_from("<4sII", data, 0)
    if magic != GLB_MAGIC:
        raise GlbError("Invalid GLB: bad magic")
    if version != GLB_VERSION_SUPPORTED:
        raise GlbError(f"Unsupported GLB version: {version} (expected {GLB_VERSION_SUPPORTED})")
    if total_length != len(data):
        raise GlbError("Invalid GLB: length mismatch")

    json_chunk: bytes | None = None
    bin_chunk: bytes | None = None

    offset = 12
    while offset < total_length:
        if offset + 8 > total_length:
            raise GlbError("Invalid GLB: truncated chunk header")
        chunk_length, chunk_type = struct.unpack_from("<II", data, offset)
        offset += 8
        if offset + chunk_length > total_length:
            raise GlbError("Invalid GLB: truncated chunk data")
        chunk_data = data[offset : offset + chunk_length]
        offset += chunk_length

        if chunk_type == CHUNK_TYPE_JSON and json_chunk is None:
            json_chunk = chunk_data
        elif chunk_type == CHUNK_TYPE_BIN and bin_chunk is None:
            bin_chunk = chunk_data

    if json_chunk is None:
        raise GlbError("Invalid GLB: missing JSON chunk")

    gltf = _parse_json(json_chunk)
    bin_chunk = bin_chunk or b""
    # The BIN chunk may carry up to 3 bytes of trailing padding.
    buffers = gltf.get("buffers", [])
    if buffers and isinstance(buffers[0].get("byteLength"), int):
        declared = buffers[0]["byteLength"]
        if declared > len(bin_chunk):
            raise GlbError("Invalid GLB: BIN chunk shorter than buffers[0].byteLength")
        bin_chunk = bin_chunk[:declared]
    return Asset.from_gltf(gltf, bin_chunk)


def decode_gltf(data: bytes, resolve_uri: Callable[[str], bytes] | None = None) -> Asset:
    gltf = _parse_json(data)
    buffers = gltf.get("buffers", [])
    if len(buffers) > 1:
        raise GlbError("Only single-buffer assets are supported")
    bin_chunk = b""
    if buffers:
        uri = buffers[0].get("uri")
        if uri is None:
            raise GlbError("buffers[0].uri missing in glTF")
        if uri.startswith("data:"):
            _, sep, payload = uri.partition(";base64,")
            if not sep:
                raise GlbError("Only base64 data URIs are supported")
            try:
                bin_chunk = base64.b64decode(payload, validate=True)
            except ValueError as exc:
                raise GlbError(f"Invalid base64 buffer: {exc}") from exc
        elif resolve_uri is not None:
            bin_chunk = resolve_uri(uri)
        else:
            raise GlbError(f"External buffer URI cannot be resolved: {uri}")
    return Asset.from_gltf(gltf, bin_chunk)


def _parse_json(data: bytes) -> dict[str, Any]:
    try:
        gltf = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise GlbError(f"Invalid glTF JSON: {exc}") from exc
    if not isinstance(gltf, dict):
        raise GlbError("Invalid glTF: JSON root is not an object")
    return gltf


def encode_glb(asset: Asset) -> bytes:
    json_bytes = json.dumps(asset.to_gltf(), ensure_ascii=True, separators=(",", ":")).encode("utf-8")
    json_padding = (4 - len(json_bytes) % 4) % 4
    if json_padding:
        json_bytes += b" " * json_padding

    bin_chunk = bytes(asset.bin_chunk)
    bin_padding = (4 - len(bin_chunk) % 4) % 4
    if bin_padding:
        bin_chunk += b"\x00" * bin_padding

    total_length = 12 + 8 + len(json_bytes)
    if bin_chunk:
        total_length += 8 + len(bin_chunk)
    header = struct.pack("<4sII", GLB_MAGIC, GLB_VERSION_SUPPORTED, total_length)
    json_header = struct.pack("<II", len(json_bytes), CHUNK_TYPE_JSON)
    out = header + json_header + json_bytes
    if bin_chunk:
        out += struct.pack("<II", len(bin_chunk), CHUNK_TYPE_BIN) + bin_chunk
    return out


def encode_gltf(asset: Asset, *, bin_uri: str | None = None, indent: int | None = None) -> bytes:
    gltf = asset.to_gltf()
    if asset.bin_chunk:
        if bin_uri is None:
            gltf["buffers"][0]["uri"] = DATA_URI_PREFIX + base64.b64encode(bytes(asset.bin_chunk)).decode("ascii")
        else:
            gltf["buffers"][0]["uri"] = bin_uri
    return json.dumps(gltf, ensure_ascii=True, indent=indent).encode("utf-8")
