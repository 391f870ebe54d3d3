"""Candidate listing feed: recent release posts from the game API."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any

import httpx
import structlog

from ..models import CandidateListing, DownloadLink
from .errors import NetworkError, StorageError, ValidationError
from .extractor import VersionExtractor
from .http_client import HttpClientService
from .normalizer import decode_title

log = structlog.stdlib.get_logger()


def _parse_date(value: Any) -> datetime | None:
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    # Listings are compared as naive timestamps
    return parsed.replace(tzinfo=None)


def _parse_download_links(data: Any) -> tuple[DownloadLink, ...]:
    """Accept either a list of link objects or a ``{service: [urls]}`` mapping."""
    links: list[DownloadLink] = []
    if isinstance(data, list):
        for item in data:
            if isinstance(item, dict) and item.get("url"):
                links.append(DownloadLink(
                    service=str(item.get("service") or item.get("name") or "unknown"),
                    url=str(item["url"]),
                    link_type=str(item.get("type", "direct")),
                ))
    elif isinstance(data, dict):
        for service, urls in data.items():
            for url in urls if isinstance(urls, list) else [urls]:
                if url:
                    links.append(DownloadLink(service=str(service), url=str(url)))
    return tuple(links)


def parse_listing(item: dict[str, Any]) -> CandidateListing | None:
    """Build a CandidateListing from one feed entry, or None if it is unusable."""
    title = decode_title(str(item.get("title") or ""))
    link = str(item.get("link") or item.get("url") or "").strip()
    if not title or not link:
        return None
    return CandidateListing(
        title=title,
        link=link,
        date=_parse_date(item.get("date") or item.get("published")),
        image=item.get("image") or None,
        description=item.get("description") or None,
        source=item.get("source") or item.get("category") or None,
        download_links=_parse_download_links(item.get("downloadLinks") or item.get("download_links")),
    )


def parse_listings(data: Any) -> list[CandidateListing]:
    """Parse a feed payload: a bare list or an object with a ``games`` list.

    Raises:
        ValidationError: If the payload holds no list of entries
    """
    if isinstance(data, dict):
        data = data.get("games", data.get("results"))
    if not isinstance(data, list):
        raise ValidationError("Feed payload is not a list of listings", field="games")

    listings = []
    skipped = 0
    for item in data:
        listing = parse_listing(item) if isinstance(item, dict) else None
        if listing is None:
            skipped += 1
            continue
        listings.append(listing)

    if skipped:
        log.debug("Skipped unusable feed entries", skipped=skipped)
    return listings


def dedupe_listings(listings: list[CandidateListing]) -> list[CandidateListing]:
    """Keep one listing per link (the newest) and order newest first."""
    by_link: dict[str, CandidateListing] = {}
    for listing in listings:
        existing = by_link.get(listing.link)
        if existing is None or (listing.date or datetime.min) > (existing.date or datetime.min):
            by_link[listing.link] = listing
    return sorted(by_link.values(), key=lambda listing: listing.date or datetime.min, reverse=True)


def drop_repacks(listings: list[CandidateListing], extractor: VersionExtractor | None = None) -> list[CandidateListing]:
    extractor = extractor or VersionExtractor()
    return [listing for listing in listings if extractor.extract(listing.title).release_type != "REPACK"]


def load_candidates(path: Path) -> list[CandidateListing]:
    """Read listings from a JSON file in the feed's own format.

    Raises:
        StorageError: If the file cannot be read or parsed
        ValidationError: If it does not hold a list of listings
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise StorageError("Could not read the listings file", e, str(path), "load") from e
    except json.JSONDecodeError as e:
        raise StorageError("The listings file is not valid JSON", e, str(path), "load") from e

    listings = dedupe_listings(parse_listings(data))
    log.info("Listings loaded from file", path=str(path), listings=len(listings))
    return listings


class CandidateFeedService:
    """Fetches recent release posts from the game API."""

    def __init__(self, http_client: HttpClientService, base_url: str) -> None:
        """Initialize the feed service.

        Args:
            http_client: Shared HTTP client
            base_url: URL of the recent-listings endpoint
        """
        self.http_client = http_client
        self.base_url = base_url
        self.extractor = VersionExtractor()

    async def fetch_candidates(self, limit: int = 100, avoid_repacks: bool = False) -> list[CandidateListing]:
        """Fetch, decode and deduplicate recent listings.

        Args:
            limit: Maximum number of entries to request
            avoid_repacks: Drop REPACK listings before returning

        Returns:
            Listings ordered newest first

        Raises:
            NetworkError: If the feed cannot be fetched
            ValidationError: If the feed payload is malformed
        """
        log.info("Fetching candidate listings", url=self.base_url, limit=limit)
        try:
            response = await self.http_client.get(self.base_url, params={"limit": str(limit)})
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise NetworkError(
                "Feed request was rejected",
                url=self.base_url,
                status_code=e.response.status_code,
                original_error=e,
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError("Could not reach the listings feed", url=self.base_url, original_error=e) from e
        except ValueError as e:
            raise ValidationError("Listings feed returned invalid JSON", field="body") from e

        listings = dedupe_listings(parse_listings(data))[:limit]
        if avoid_repacks:
            listings = drop_repacks(listings, self.extractor)

        log.info("Candidate listings fetched", listings=len(listings))
        return listings
