"""Cross-resolution of version and build numbers through a catalogue lookup.

Listings often carry only one axis: a version without its build, a build
without its version, or a date standing in for both. When the tracked title
has an external catalogue id, the lookup service can fill in the missing
axis so candidates compare on the axis the user trusts.
"""

import asyncio
from dataclasses import replace

import httpx
import structlog

from ..models import MatchCandidate, TrackedTitle, VersionInfo
from .errors import ResolutionError
from .extractor import is_valid_build_number, with_resolved_axes
from .http_client import HttpClientService

log = structlog.stdlib.get_logger()


class VersionResolver:
    """Fills a missing version or build from an external catalogue."""

    def __init__(
        self,
        http_client: HttpClientService,
        base_url: str,
        concurrency: int = 5,
    ) -> None:
        """Initialize the resolver.

        Args:
            http_client: Shared HTTP client (provides timeouts and retries)
            base_url: Root URL of the lookup service
            concurrency: Maximum lookups in flight at once
        """
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self._semaphore = asyncio.Semaphore(concurrency)

    @staticmethod
    def needs_resolution(info: VersionInfo, catalogue_id: str | None) -> bool:
        """True when exactly one axis is known, or the version is only a date."""
        if not catalogue_id:
            return False
        if info.is_date_version:
            return True
        return info.has_version != info.has_build

    async def resolve(self, info: VersionInfo, catalogue_id: str) -> VersionInfo:
        """Return a copy of ``info`` with the missing axis filled in.

        Never raises: a failed lookup leaves ``info`` unchanged.

        Args:
            info: Extracted version signal of a candidate
            catalogue_id: External catalogue id of the tracked title

        Returns:
            Resolved VersionInfo, or ``info`` itself when nothing was found
        """
        if not self.needs_resolution(info, catalogue_id):
            return info

        if info.is_date_version and info.version_date:
            params = {"date": info.version_date.isoformat()}
        elif info.has_version:
            params = {"version": info.version or ""}
        else:
            params = {"build": info.build or ""}

        try:
            async with self._semaphore:
                version, build = await self._lookup(catalogue_id, params)
        except ResolutionError as e:
            log.warning(
                "Version resolution failed",
                catalogue_id=catalogue_id,
                params=params,
                error=e.message,
                technical_details=e.technical_details,
            )
            return info

        if not version and not build:
            return info

        resolved = with_resolved_axes(info, version, build)
        log.debug(
            "Version resolved",
            catalogue_id=catalogue_id,
            version=resolved.version,
            build=resolved.build,
        )
        # Resolved values come from an authority, so they no longer need confirmation.
        return replace(resolved, needs_confirmation=False)

    async def resolve_candidates(
        self,
        candidates: list[MatchCandidate],
        title: TrackedTitle,
    ) -> list[MatchCandidate]:
        """Resolve every candidate of a title, bounded by the semaphore."""
        catalogue_id = title.catalogue_id
        if not catalogue_id or not any(
            self.needs_resolution(candidate.info, catalogue_id) for candidate in candidates
        ):
            return candidates

        resolved = await asyncio.gather(
            *(self.resolve(candidate.info, catalogue_id) for candidate in candidates)
        )
        return [
            replace(candidate, info=info)
            for candidate, info in zip(candidates, resolved)
        ]

    async def _lookup(self, catalogue_id: str, params: dict[str, str]) -> tuple[str | None, str | None]:
        url = f"{self.base_url}/versions/{catalogue_id}"
        try:
            response = await self.http_client.get(url, params=params)
            data = response.json()
        except httpx.HTTPError as e:
            raise ResolutionError("Version lookup request failed", catalogue_id=catalogue_id, original_error=e) from e
        except ValueError as e:
            raise ResolutionError("Version lookup returned invalid JSON", catalogue_id=catalogue_id, original_error=e) from e

        if not isinstance(data, dict):
            raise ResolutionError("Version lookup returned an unexpected shape", catalogue_id=catalogue_id)

        version = data.get("version")
        build = str(data.get("build") or "").strip()
        if build and not is_valid_build_number(build):
            log.warning("Version lookup returned an invalid build", catalogue_id=catalogue_id, build=build)
            build = ""
        return (
            str(version) if version else None,
            build or None,
        )
