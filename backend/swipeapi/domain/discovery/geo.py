"""Geohash decoding and great-circle distance between profiles."""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Optional, Tuple

from swipeapi.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
_DECODE_MAP = {char: idx for idx, char in enumerate(BASE32)}

EARTH_RADIUS_KM = 6371.0
GEOHASH_MIN_LENGTH = 1
GEOHASH_MAX_LENGTH = 12


class InvalidGeohash(ValueError):
	"""Raised when a geohash cannot be decoded."""


class InvalidGeohashCharacter(InvalidGeohash):
	def __init__(self, geohash: str, char: str) -> None:
		super().__init__(f"invalid geohash character {char!r}")
		self.geohash = geohash
		self.char = char


def decode_bounds(geohash: str) -> Tuple[Tuple[float, float], Tuple[float, float]]:
	"""Return ((lat_min, lat_max), (lon_min, lon_max)) for the geohash cell."""
	if not GEOHASH_MIN_LENGTH <= len(geohash) <= GEOHASH_MAX_LENGTH:
		raise InvalidGeohash(f"geohash length must be {GEOHASH_MIN_LENGTH}..{GEOHASH_MAX_LENGTH}")
	lat_lo, lat_hi = -90.0, 90.0
	lon_lo, lon_hi = -180.0, 180.0
	even = True
	for char in geohash:
		value = _DECODE_MAP.get(char)
		if value is None:
			raise InvalidGeohashCharacter(geohash, char)
		for shift in range(4, -1, -1):
			bit = (value >> shift) & 1
			if even:
				mid = (lon_lo + lon_hi) / 2
				if bit:
					lon_lo = mid
				else:
					lon_hi = mid
			else:
				mid = (lat_lo + lat_hi) / 2
				if bit:
					lat_lo = mid
				else:
					lat_hi = mid
			even = not even
	return (lat_lo, lat_hi), (lon_lo, lon_hi)


def decode_geohash(geohash: str) -> Tuple[float, float]:
	"""Decode a geohash to the (lat, lon) midpoint of its cell."""
	(lat_lo, lat_hi), (lon_lo, lon_hi) = decode_bounds(geohash)
	return (lat_lo + lat_hi) / 2, (lon_lo + lon_hi) / 2


def encode_geohash(lat: float, lon: float, precision: int = 9) -> str:
	if not GEOHASH_MIN_LENGTH <= precision <= GEOHASH_MAX_LENGTH:
		raise InvalidGeohash(f"precision must be {GEOHASH_MIN_LENGTH}..{GEOHASH_MAX_LENGTH}")
	lat_lo, lat_hi = -90.0, 90.0
	lon_lo, lon_hi = -180.0, 180.0
	chars: list[str] = []
	bits = 0
	bit_count = 0
	even = True
	while len(chars) < precision:
		if even:
			mid = (lon_lo + lon_hi) / 2
			if lon >= mid:
				bits = (bits << 1) | 1
				lon_lo = mid
			else:
				bits <<= 1
				lon_hi = mid
		else:
			mid = (lat_lo + lat_hi) / 2
			if lat >= mid:
				bits = (bits << 1) | 1
				lat_lo = mid
			else:
				bits <<= 1
				lat_hi = mid
		even = not even
		bit_count += 1
		if bit_count == 5:
			chars.append(BASE32[bits])
			bits = 0
			bit_count = 0
	return "".join(chars)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
	"""Return the great-circle distance between two points in kilometers."""
	phi1, phi2 = math.radians(lat1), math.radians(lat2)
	dphi = math.radians(lat2 - lat1)
	dlambda = math.radians(lon2 - lon1)
	a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
	return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_km(
	geohash1: Optional[str],
	geohash2: Optional[str],
	*,
	log_extra: Optional[Dict[str, Any]] = None,
) -> Optional[int]:
	"""Whole-kilometer distance between two geohashes, or None when either is unusable.

	Malformed input is logged (with ``log_extra`` identifiers) and counted, never raised.
	"""
	if not isinstance(geohash1, str) or not isinstance(geohash2, str):
		return None
	if not geohash1 or not geohash2:
		return None
	try:
		lat1, lon1 = decode_geohash(geohash1)
		lat2, lon2 = decode_geohash(geohash2)
	except InvalidGeohash as exc:
		obs_metrics.inc_geohash_decode_failure()
		logger.warning("geohash decode failed: %s", exc, extra=log_extra)
		return None
	return int(round(haversine_km(lat1, lon1, lat2, lon2)))


def geohash_prefix(geohash: str, precision: int) -> str:
	"""Leading ``precision`` characters of the geohash, i.e. its enclosing cell."""
	if precision < GEOHASH_MIN_LENGTH:
		raise InvalidGeohash(f"precision must be at least {GEOHASH_MIN_LENGTH}")
	return geohash[:precision]
