"""Deterministic venue resolution against a known venue catalog.

Takes the venue hints produced while drafting an event (an explicit venue id,
a venue name, the user's free-text message) and decides which catalog venue
is meant. Low-confidence matches are never picked automatically; callers
branch on the returned status instead.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

logger = logging.getLogger(__name__)

RESOLVE_THRESHOLD = 0.80
AMBIGUOUS_THRESHOLD = 0.40
TIE_GAP = 0.05
MAX_AMBIGUOUS_CANDIDATES = 3
ALIAS_CONFIDENCE = 0.90
SLUG_MATCH_SCORE = 0.95
FIRST_TOKEN_BOOST = 0.05
FUZZY_SCORE_CAP = 0.94
MAX_ALIAS_NGRAM = 4

STOPWORDS = frozenset(
    {
        "a",
        "an",
        "and",
        "as",
        "at",
        "be",
        "by",
        "do",
        "for",
        "from",
        "go",
        "if",
        "in",
        "is",
        "it",
        "me",
        "my",
        "no",
        "of",
        "on",
        "or",
        "our",
        "so",
        "the",
        "this",
        "to",
        "up",
        "us",
        "we",
        "with",
    }
)

CURATED_ALIAS_OVERRIDES: dict[str, tuple[str, ...]] = {
    "long-table-brewhouse": ("ltb", "long table"),
    "mercury-cafe": ("the merc", "merc"),
    "st-julien-hotel-spa": ("st julien", "the st julien"),
}

ResolutionSource = Literal["llm_validated", "server_exact", "server_fuzzy", "server_alias"]

_non_alnum_space = re.compile(r"[^a-z0-9\s]")
_non_slug = re.compile(r"[^a-z0-9\s-]")
_whitespace = re.compile(r"\s+")
_dashes = re.compile(r"-+")
_token_split = re.compile(r"[^a-z0-9]+")
_non_alnum = re.compile(r"[^a-z0-9]")


@dataclass(frozen=True)
class VenueCatalogEntry:
    id: str
    name: str
    slug: str | None = None


@dataclass(frozen=True)
class VenueCandidate:
    id: str
    name: str
    score: float


@dataclass(frozen=True)
class Resolved:
    venue_id: str
    venue_name: str
    confidence: float
    source: ResolutionSource
    status: Literal["resolved"] = "resolved"


@dataclass(frozen=True)
class Ambiguous:
    candidates: tuple[VenueCandidate, ...]
    input_name: str | None = None
    status: Literal["ambiguous"] = "ambiguous"


@dataclass(frozen=True)
class Unresolved:
    input_name: str | None = None
    status: Literal["unresolved"] = "unresolved"


@dataclass(frozen=True)
class CustomLocation:
    name: str
    status: Literal["custom_location"] = "custom_location"


@dataclass(frozen=True)
class OnlineExplicit:
    url: str
    status: Literal["online_explicit"] = "online_explicit"


VenueResolution = Resolved | Ambiguous | Unresolved | CustomLocation | OnlineExplicit


@dataclass(frozen=True)
class VenueResolverInput:
    draft_venue_id: Any = None
    draft_venue_name: Any = None
    user_message: Any = ""
    venue_catalog: Sequence[VenueCatalogEntry] = ()
    draft_location_mode: Any = None
    draft_online_url: Any = None
    is_custom_location: bool = False
    alias_overrides: Mapping[str, Iterable[str]] = field(
        default_factory=lambda: CURATED_ALIAS_OVERRIDES
    )


def _clean_str(value: Any) -> str | None:
    """Return ``value`` stripped, or None when it is not a non-empty string."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def has_venue_signals_in_draft(draft_payload: Mapping[str, Any]) -> bool:
    """True when the draft carries concrete location identifiers.

    ``location_mode`` alone is not a signal; drafting tools tend to default it.
    """
    return any(
        _clean_str(draft_payload.get(key))
        for key in ("venue_id", "venue_name", "custom_location_name", "online_url")
    )


def should_resolve_venue(
    *, mode: str, has_location_intent: bool, draft_payload: Mapping[str, Any]
) -> bool:
    """Gate venue resolution by edit mode.

    ``create`` always resolves, ``edit_series`` only with location intent or
    venue fields in the draft, and every other mode (``edit_occurrence``)
    never does.
    """
    if mode == "create":
        return True
    if mode != "edit_series":
        return False
    return has_location_intent or has_venue_signals_in_draft(draft_payload)


def normalize_for_match(name: str) -> str:
    value = name.lower().replace("&", "and")
    value = _non_alnum_space.sub("", value)
    return _whitespace.sub(" ", value).strip()


def generate_match_slug(name: str) -> str:
    value = _non_slug.sub("", name.lower().strip())
    value = _whitespace.sub("-", value)
    value = _dashes.sub("-", value)
    return value.strip("-")


def _ordered_tokens(name: str) -> list[str]:
    tokens = _token_split.split(name.lower().replace("&", "and"))
    return list(dict.fromkeys(token for token in tokens if token))


def tokenize(name: str) -> set[str]:
    return set(_ordered_tokens(name))


def token_jaccard_score(a: set[str], b: set[str]) -> float:
    if not a and not b:
        return 0.0
    intersection = len(a & b)
    union = len(a) + len(b) - intersection
    return intersection / union if union else 0.0


def score_venue_match(candidate: str, entry: VenueCatalogEntry) -> float:
    """Score how well ``candidate`` names ``entry``.

    1.0 for a normalized exact match, ``SLUG_MATCH_SCORE`` for a slug match,
    otherwise token overlap with a small boost when the first words agree,
    capped below the slug score.
    """
    if normalize_for_match(candidate) == normalize_for_match(entry.name):
        return 1.0

    candidate_slug = generate_match_slug(candidate)
    entry_slug = entry.slug or generate_match_slug(entry.name)
    if candidate_slug and candidate_slug == entry_slug:
        return SLUG_MATCH_SCORE

    candidate_tokens = _ordered_tokens(candidate)
    entry_tokens = _ordered_tokens(entry.name)
    score = token_jaccard_score(set(candidate_tokens), set(entry_tokens))
    if candidate_tokens and entry_tokens and candidate_tokens[0] == entry_tokens[0]:
        score += FIRST_TOKEN_BOOST
    return min(score, FUZZY_SCORE_CAP)


def extract_venue_name_from_message(
    message: str, catalog: Sequence[VenueCatalogEntry]
) -> str | None:
    """Return the longest catalog name found as whole words in ``message``."""
    if not message.strip() or not catalog:
        return None

    # Padding keeps matches on whole words.
    padded_message = f" {normalize_for_match(message)} "
    best_match: str | None = None
    best_length = 0
    for entry in catalog:
        normalized_name = normalize_for_match(entry.name)
        if (
            normalized_name
            and len(normalized_name) > best_length
            and f" {normalized_name} " in padded_message
        ):
            best_match = entry.name
            best_length = len(normalized_name)
    return best_match


def normalize_alias(value: str) -> str:
    return _non_alnum.sub("", value.lower())


def generate_acronym_alias(name: str) -> str | None:
    """Return the initials of the non-stopword words in ``name``.

    Single-word names have no acronym.
    """
    words = [
        word for word in normalize_for_match(name).split() if word not in STOPWORDS
    ]
    if len(words) < 2:
        return None
    return "".join(word[0] for word in words)


AliasIndex = dict[str, list[VenueCatalogEntry]]


def build_venue_alias_index(
    catalog: Iterable[VenueCatalogEntry],
    overrides: Mapping[str, Iterable[str]] = CURATED_ALIAS_OVERRIDES,
) -> AliasIndex:
    """Map short aliases (acronyms and curated nicknames) to catalog entries.

    Aliases that are ordinary English stopwords are left out so a sentence
    like "open mic at 7pm" never matches a venue abbreviated "AT". The
    index is a pure function of its inputs; callers may memoize it per
    catalog version.
    """
    index: AliasIndex = {}

    def add(alias: str | None, entry: VenueCatalogEntry) -> None:
        if not alias:
            return
        key = normalize_alias(alias)
        if not key or key in STOPWORDS:
            return
        entries = index.setdefault(key, [])
        if all(existing.id != entry.id for existing in entries):
            entries.append(entry)

    for entry in catalog:
        add(generate_acronym_alias(entry.name), entry)
        slug = entry.slug or generate_match_slug(entry.name)
        for alias in overrides.get(slug, ()):
            add(alias, entry)
    return index


def extract_venue_alias_from_message(message: str, index: Mapping[str, Any]) -> str | None:
    """Return the longest alias in ``index`` spelled out by words of ``message``.

    Runs of up to ``MAX_ALIAS_NGRAM`` consecutive words are joined without
    spaces, so "long table" matches the alias ``longtable``. Runs made only
    of stopwords are ignored.
    """
    if not index or not isinstance(message, str):
        return None

    tokens = [token for token in _token_split.split(message.lower()) if token]
    best: str | None = None
    for size in range(1, MAX_ALIAS_NGRAM + 1):
        for start in range(len(tokens) - size + 1):
            words = tokens[start : start + size]
            if all(word in STOPWORDS for word in words):
                continue
            alias = "".join(words)
            if alias in index and (best is None or len(alias) > len(best)):
                best = alias
    return best


def _usable_catalog(catalog: Any) -> list[VenueCatalogEntry]:
    if not isinstance(catalog, Iterable):
        return []
    return [
        entry
        for entry in catalog
        if isinstance(entry, VenueCatalogEntry)
        and isinstance(entry.id, str)
        and _clean_str(entry.name)
    ]


def _candidates(scored: Iterable[VenueCandidate]) -> tuple[VenueCandidate, ...]:
    kept = [candidate for candidate in scored if candidate.score >= AMBIGUOUS_THRESHOLD]
    return tuple(kept[:MAX_AMBIGUOUS_CANDIDATES])


def resolve_venue(resolver_input: VenueResolverInput) -> VenueResolution:
    """Resolve draft venue hints to a catalog venue.

    Checks run in order and the first decisive one wins: an explicit online
    URL, a valid venue id, a strong name score, a unique alias, the custom
    location flag, weaker name scores (ambiguous), and finally unresolved.
    Never raises for malformed input.
    """
    online_url = _clean_str(resolver_input.draft_online_url)
    if resolver_input.draft_location_mode == "online" and online_url:
        return OnlineExplicit(url=online_url)

    catalog = _usable_catalog(resolver_input.venue_catalog)
    draft_name = _clean_str(resolver_input.draft_venue_name)

    venue_id = _clean_str(resolver_input.draft_venue_id)
    if venue_id:
        match = next((entry for entry in catalog if entry.id == venue_id), None)
        if match:
            return Resolved(
                venue_id=match.id,
                venue_name=match.name,
                confidence=1.0,
                source="llm_validated",
            )
        logger.debug("Draft venue id %s not in catalog; matching by name", venue_id)

    if not catalog:
        return Unresolved(input_name=draft_name)

    message = resolver_input.user_message if isinstance(resolver_input.user_message, str) else ""
    candidate_name = draft_name or extract_venue_name_from_message(message, catalog)

    scored: list[VenueCandidate] = []
    if candidate_name:
        scored = sorted(
            (
                VenueCandidate(
                    id=entry.id,
                    name=entry.name,
                    score=score_venue_match(candidate_name, entry),
                )
                for entry in catalog
            ),
            key=lambda candidate: candidate.score,
            reverse=True,
        )

    if scored and scored[0].score >= RESOLVE_THRESHOLD:
        best = scored[0]
        runner_up = scored[1] if len(scored) > 1 else None
        tied = (
            runner_up is not None
            and runner_up.score >= RESOLVE_THRESHOLD
            and best.score - runner_up.score < TIE_GAP
        )
        if not tied:
            return Resolved(
                venue_id=best.id,
                venue_name=best.name,
                confidence=best.score,
                source="server_exact" if best.score >= SLUG_MATCH_SCORE else "server_fuzzy",
            )
        logger.debug("Venue scores for %r too close to call", candidate_name)

    alias_index = build_venue_alias_index(catalog, resolver_input.alias_overrides)
    if draft_name:
        alias = normalize_alias(draft_name)
    else:
        alias = extract_venue_alias_from_message(message, alias_index)
    alias_entries = alias_index.get(alias, []) if alias else []
    if len(alias_entries) == 1:
        entry = alias_entries[0]
        return Resolved(
            venue_id=entry.id,
            venue_name=entry.name,
            confidence=ALIAS_CONFIDENCE,
            source="server_alias",
        )
    if len(alias_entries) > 1:
        return Ambiguous(
            candidates=tuple(
                VenueCandidate(id=entry.id, name=entry.name, score=ALIAS_CONFIDENCE)
                for entry in alias_entries[:MAX_AMBIGUOUS_CANDIDATES]
            ),
            input_name=draft_name or alias,
        )

    if resolver_input.is_custom_location and draft_name:
        return CustomLocation(name=draft_name)

    candidates = _candidates(scored)
    if candidates:
        return Ambiguous(candidates=candidates, input_name=candidate_name)
    return Unresolved(input_name=candidate_name)
