from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

from .errors import InvalidArgument


WGS84_A = 6378137.0
WGS84_F = 1 / 298.257223563
WGS84_E2 = WGS84_F * (2 - WGS84_F)


def _deg_to_rad(value: float) -> float:
    return value * math.pi / 180.0


def _finite(value: float, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgument(f"{name} must be a number")
    value = float(value)
    if not math.isfinite(value):
        raise InvalidArgument(f"{name} must be finite")
    return value


def _mat4_mul(a: tuple[float, ...], b: tuple[float, ...]) -> tuple[float, ...]:
    out = [0.0] * 16
    for col in range(4):
        for row in range(4):
            out[col * 4 + row] = (
                a[0 * 4 + row] * b[col * 4 + 0]
                + a[1 * 4 + row] * b[col * 4 + 1]
                + a[2 * 4 + row] * b[col * 4 + 2]
                + a[3 * 4 + row] * b[col * 4 + 3]
            )
    return tuple(out)


def _mat4_scale(sx: float, sy: float, sz: float) -> tuple[float, ...]:
    return (sx, 0.0, 0.0, 0.0, 0.0, sy, 0.0, 0.0, 0.0, 0.0, sz, 0.0, 0.0, 0.0, 0.0, 1.0)


@dataclass(frozen=True)
class Frame:
    """Column-major 4x4 local-to-ECEF transform."""

    matrix: tuple[float, ...]

    def __post_init__(self) -> None:
        if len(self.matrix) != 16:
            raise InvalidArgument("Frame matrix must have 16 elements")
        values = tuple(_finite(v, "frame element") for v in self.matrix)
        object.__setattr__(self, "matrix", values)

    @staticmethod
    def identity() -> "Frame":
        return Frame(_mat4_scale(1.0, 1.0, 1.0))

    def to_list(self) -> list[float]:
        return list(self.matrix)

    def uniform_scale(self) -> float:
        m = self.matrix
        return math.sqrt(m[0] * m[0] + m[1] * m[1] + m[2] * m[2])

    def translation(self) -> tuple[float, float, float]:
        return (self.matrix[12], self.matrix[13], self.matrix[14])

    def transform_point(self, p: Iterable[float]) -> tuple[float, float, float]:
        x, y, z = p
        m = self.matrix
        return (
            m[0] * x + m[4] * y + m[8] * z + m[12],
            m[1] * x + m[5] * y + m[9] * z + m[13],
            m[2] * x + m[6] * y + m[10] * z + m[14],
        )


def _check_geodetic(longitude_deg: float, latitude_deg: float) -> tuple[float, float]:
    lon = _finite(longitude_deg, "longitude")
    lat = _finite(latitude_deg, "latitude")
    if not -90.0 <= lat <= 90.0:
        raise InvalidArgument(f"latitude out of range [-90, 90]: {lat}")
    if not -180.0 <= lon <= 180.0:
        raise InvalidArgument(f"longitude out of range [-180, 180]: {lon}")
    return lon, lat


def build_frame(longitude_deg: float, latitude_deg: float, height: float = 0.0) -> Frame:
    lon_deg, lat_deg = _check_geodetic(longitude_deg, latitude_deg)
    height = _finite(height, "height")
    lon = _deg_to_rad(lon_deg)
    lat = _deg_to_rad(lat_deg)

    sin_lat = math.sin(lat)
    cos_lat = math.cos(lat)
    sin_lon = math.sin(lon)
    cos_lon = math.cos(lon)

    n = WGS84_A / math.sqrt(1.0 - WGS84_E2 * sin_lat * sin_lat)
    x = (n + height) * cos_lat * cos_lon
    y = (n + height) * cos_lat * sin_lon
    z = ((1.0 - WGS84_E2) * n + height) * sin_lat

    east = (-sin_lon, cos_lon, 0.0)
    north = (-sin_lat * cos_lon, -sin_lat * sin_lon, cos_lat)
    up = (cos_lat * cos_lon, cos_lat * sin_lon, sin_lat)

    return Frame(
        (
            east[0],
            east[1],
            east[2],
            0.0,
            north[0],
            north[1],
            north[2],
            0.0,
            up[0],
            up[1],
            up[2],
            0.0,
            x,
            y,
            z,
            1.0,
        )
    )


def compose_scale(frame: Frame, scale: float) -> Frame:
    scale = _finite(scale, "scale")
    if scale <= 0:
        raise InvalidArgument(f"scale must be > 0, got {scale}")
    return Frame(_mat4_mul(frame.matrix, _mat4_scale(scale, scale, scale)))


def region_from_footprint(
    longitude_deg: float,
    latitude_deg: float,
    width: float,
    min_height: float,
    max_height: float,
) -> list[float]:
    """Region [west, south, east, north, minH, maxH] of a width x width square centred on the origin."""
    lon_deg, lat_deg = _check_geodetic(longitude_deg, latitude_deg)
    width = _finite(width, "width")
    min_height = _finite(min_height, "min_height")
    max_height = _finite(max_height, "max_height")
    if width <= 0:
        raise InvalidArgument(f"width must be > 0, got {width}")
    if min_height > max_height:
        raise InvalidArgument("min_height must not exceed max_height")
    if abs(lat_deg) == 90.0:
        raise InvalidArgument("region footprint is undefined at the poles")

    lon = _deg_to_rad(lon_deg)
    lat = _deg_to_rad(lat_deg)
    sin_lat = math.sin(lat)
    w = 1.0 - WGS84_E2 * sin_lat * sin_lat
    prime_vertical = WGS84_A / math.sqrt(w)
    meridional = WGS84_A * (1.0 - WGS84_E2) / (w * math.sqrt(w))

    half_lat = (width / meridional) / 2.0
    half_lon = (width / (prime_vertical * math.cos(lat))) / 2.0
    return [lon - half_lon, lat - half_lat, lon + half_lon, lat + half_lat, min_height, max_height]
