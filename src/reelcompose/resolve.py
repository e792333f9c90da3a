"""Reference resolution and deduplication against the candidate pool.

Upstream selection (semantic search, tag match, text match, recency
fallback -- whichever tier produced it) hands over content references.
Every reference is treated the same way:

  - Not in the pool and not caller-owned: dropped, one diagnostic each.
  - Library item already used earlier in the list: dropped. The first
    occurrence in input order wins.
  - Caller-owned item: may repeat freely (the same upload can open and
    close a video).

If nothing survives, the request has no renderable content and composition
stops with NoValidContentError.
"""

from collections.abc import Iterable

from .errors import EmptyCandidatePoolError, NoValidContentError
from .models import ContentItem, Diagnostic


_STAGE = "resolve"


class CandidatePool:
    """Read-only, request-scoped lookup of library and caller-owned items.

    Owned ids shadow library ids on collision: an upload the caller supplied
    for this request is never subject to the library's single-use rule.
    """

    def __init__(self, library: Iterable[ContentItem] = (), owned: Iterable[ContentItem] = ()):
        self._library = {item.id: item for item in library}
        self._owned = {
            item.id: (item if item.owned else item.model_copy(update={"owned": True}))
            for item in owned
        }

    def __len__(self) -> int:
        return len(self._library.keys() | self._owned.keys())

    def __contains__(self, ref: str) -> bool:
        return ref in self._owned or ref in self._library

    def get(self, ref: str) -> ContentItem | None:
        if ref in self._owned:
            return self._owned[ref]
        return self._library.get(ref)

    def is_owned(self, ref: str) -> bool:
        return ref in self._owned

    @property
    def library(self) -> list[ContentItem]:
        return list(self._library.values())

    @property
    def owned(self) -> list[ContentItem]:
        return list(self._owned.values())


def require_pool(pool: CandidatePool) -> None:
    """Raise EmptyCandidatePoolError if the pool holds nothing at all."""
    if len(pool) == 0:
        raise EmptyCandidatePoolError(
            "Candidate pool is empty; upstream retrieval returned no content"
        )


def resolve_references(
    proposals: list[dict],
    pool: CandidatePool,
    key: str = "ref",
    allow_empty: bool = False,
    used: set[str] | None = None,
) -> tuple[list[tuple[dict, ContentItem]], list[Diagnostic]]:
    """Validate and deduplicate the references in a list of proposals.

    Args:
        proposals: Dicts carrying a content reference under *key*.
        pool: Candidate pool for this request.
        key: Field holding the reference id.
        allow_empty: If False, an empty result raises NoValidContentError.
        used: Library ids already consumed elsewhere in this timeline.
            Updated in place with the ids this call keeps.

    Returns:
        ([(proposal, item), ...] in input order, diagnostics).

    Raises:
        NoValidContentError: Nothing survived and allow_empty is False.
    """
    if used is None:
        used = set()

    kept = []
    diagnostics = []
    for i, proposal in enumerate(proposals):
        ref = proposal.get(key)
        item = pool.get(ref) if ref is not None else None

        if item is None:
            diagnostics.append(Diagnostic(
                stage=_STAGE,
                code="unknown_ref",
                message=f"Proposal {i}: '{ref}' is not in the candidate pool; skipped",
                ref=ref,
            ))
            continue

        if not item.owned:
            if ref in used:
                diagnostics.append(Diagnostic(
                    stage=_STAGE,
                    code="duplicate_ref",
                    message=f"Proposal {i}: library item '{ref}' already used; skipped",
                    ref=ref,
                ))
                continue
            used.add(ref)

        kept.append((proposal, item))

    if not kept and not allow_empty:
        raise NoValidContentError(
            f"None of {len(proposals)} proposed references resolved to usable content"
        )
    return kept, diagnostics
