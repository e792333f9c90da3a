"""External collaborator contracts and file-backed implementations.

The composition core never calls these itself; the request layer (the CLI,
or any service embedding reelcompose) does, and passes the results in.

  - CandidateRetriever.retrieve(query_terms, filters) -> [ContentItem]
    May return an empty list. Ranking belongs to the retriever.
  - SettingsLookup.get_user_defaults(user_id) -> {lead_in?, lead_out?} | None
    Absence is normal.

Catalog file schema (YAML):
  paths:
    clips: "/data/clips"
  items:
    - id: clip-001
      duration: 8.0
      url: "${clips}/clip-001.mp4"
      tags: [city, night]
      description: "Neon street at night"

User defaults file schema (YAML):
  users:
    user-42:
      lead_in: intro-asset-id
      lead_out: outro-asset-id
"""

from pathlib import Path
from typing import Protocol

import yaml

from .common import resolve_path_vars
from .models import ContentItem


class CandidateRetriever(Protocol):
    def retrieve(self, query_terms: list[str], filters: dict | None = None) -> list[ContentItem]:
        ...


class SettingsLookup(Protocol):
    def get_user_defaults(self, user_id: str) -> dict | None:
        ...


def parse_items(raw_items: list, paths: dict, owned: bool = False, label: str = "Item") -> list[ContentItem]:
    """Validate a list of item dicts and build ContentItems.

    Required: id. Optional: duration (>= 0), url, tags, description.

    Raises:
        ValueError: Missing id, bad duration, or duplicate id.
    """
    items = []
    seen = set()
    for i, raw in enumerate(raw_items or []):
        if not isinstance(raw, dict) or "id" not in raw:
            raise ValueError(f"{label} {i}: missing required field 'id'")
        item_id = str(raw["id"])
        if item_id in seen:
            raise ValueError(f"{label} {i}: duplicate id '{item_id}'")
        seen.add(item_id)

        duration = raw.get("duration")
        if duration is not None:
            if not isinstance(duration, (int, float)) or duration < 0:
                raise ValueError(
                    f"{label} {i} ({item_id}): duration must be >= 0, got {duration!r}"
                )
            duration = float(duration)

        url = raw.get("url")
        if url is not None:
            url = resolve_path_vars(str(url), paths)

        items.append(ContentItem(
            id=item_id,
            duration=duration,
            url=url,
            tags=[str(t).lower() for t in raw.get("tags", [])],
            description=str(raw.get("description", "")),
            owned=owned,
        ))
    return items


class CatalogRetriever:
    """Candidate retrieval from a YAML catalog file.

    Items match when any query term appears in their tags or description
    (case-insensitive). Matches are ordered by how many terms they hit,
    ties keeping catalog order. When no term matches anything, the whole
    catalog is returned as the fallback tier.
    """

    def __init__(self, catalog_path: str | Path):
        with open(catalog_path) as f:
            raw = yaml.safe_load(f) or {}
        if "items" not in raw:
            raise ValueError(f"Catalog {catalog_path}: missing required 'items' list")
        self.items = parse_items(raw["items"], raw.get("paths", {}), label="Catalog item")

    def retrieve(self, query_terms: list[str], filters: dict | None = None) -> list[ContentItem]:
        filters = filters or {}
        min_duration = filters.get("min_duration")
        limit = filters.get("limit")

        pool = [
            item for item in self.items
            if min_duration is None or (item.duration or 0) >= min_duration
        ]

        terms = [t.lower() for t in query_terms if t and t.strip()]
        scored = []
        for position, item in enumerate(pool):
            haystack = " ".join(item.tags) + " " + item.description.lower()
            hits = sum(1 for t in terms if t in haystack)
            if hits:
                scored.append((-hits, position, item))

        if scored:
            scored.sort(key=lambda s: (s[0], s[1]))
            result = [item for _, _, item in scored]
        else:
            result = pool

        if limit is not None:
            result = result[:limit]
        return result


class UserDefaultsFile:
    """Per-user lead-in/lead-out preferences from a YAML file."""

    def __init__(self, path: str | Path):
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        users = raw.get("users", {})
        if not isinstance(users, dict):
            raise ValueError(f"User defaults {path}: 'users' must be a mapping")
        self.users = users

    def get_user_defaults(self, user_id: str) -> dict | None:
        entry = self.users.get(user_id)
        if not entry:
            return None
        return {k: entry[k] for k in ("lead_in", "lead_out") if entry.get(k)}
