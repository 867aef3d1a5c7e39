from __future__ import annotations


class TilesetSampleError(RuntimeError):
    pass


class InvalidArgument(TilesetSampleError, ValueError):
    pass


class ReferentialIntegrityError(TilesetSampleError):
    pass


class UnsupportedTopology(TilesetSampleError):
    pass
