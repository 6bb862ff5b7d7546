"""Public URL helpers for photos stored in the Spaces bucket."""

from __future__ import annotations

from typing import Iterable

from swipeapi.settings import settings


def photo_base_url() -> str:
	base = settings.spaces_cdn_endpoint or settings.spaces_endpoint
	return f"{base.rstrip('/')}/{settings.spaces_bucket.strip('/')}"


def build_photo_url(photo_key: str) -> str:
	return f"{photo_base_url()}/{photo_key.lstrip('/')}"


def build_photo_urls(photo_keys: Iterable[str]) -> list[str]:
	return [build_photo_url(key) for key in photo_keys if key]
