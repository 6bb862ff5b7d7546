"""Domain-level exceptions for candidate discovery."""

from __future__ import annotations

PROFILE_FETCH = "profile_fetch"
EXCLUSION_FETCH = "exclusion_fetch"
CANDIDATE_FETCH = "candidate_fetch"
ENRICHMENT = "enrichment"


class DiscoveryError(Exception):
	"""Base class for discovery errors."""

	reason: str = "unknown"

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class InvalidDiscoveryRequest(DiscoveryError):
	reason = "invalid_request"


class RequesterProfileNotFound(DiscoveryError):
	reason = "profile_not_found"


class DiscoveryPhaseError(DiscoveryError):
	"""A collaborator call failed; ``phase`` names the pipeline step that aborted."""

	def __init__(self, phase: str, cause: BaseException) -> None:
		super().__init__(f"{phase}_failed")
		self.phase = phase
		self.cause = cause

	def __str__(self) -> str:
		return f"{self.reason}: {self.cause}"
