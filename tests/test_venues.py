from __future__ import annotations

import pytest

from happenings.venues import (
    ALIAS_CONFIDENCE,
    AMBIGUOUS_THRESHOLD,
    CURATED_ALIAS_OVERRIDES,
    MAX_AMBIGUOUS_CANDIDATES,
    RESOLVE_THRESHOLD,
    Ambiguous,
    CustomLocation,
    OnlineExplicit,
    Resolved,
    Unresolved,
    VenueCatalogEntry,
    VenueResolverInput,
    build_venue_alias_index,
    extract_venue_alias_from_message,
    extract_venue_name_from_message,
    generate_acronym_alias,
    generate_match_slug,
    has_venue_signals_in_draft,
    normalize_alias,
    normalize_for_match,
    resolve_venue,
    score_venue_match,
    should_resolve_venue,
    token_jaccard_score,
    tokenize,
)


def test_normalize_for_match():
    assert normalize_for_match("  Dazzle  ") == "dazzle"
    assert normalize_for_match("St. Julien Hotel & Spa") == "st julien hotel and spa"
    assert normalize_for_match("O'Brien's Pub") == "obriens pub"
    assert normalize_for_match("Long   Table   Brewhouse") == "long table brewhouse"


def test_generate_match_slug():
    assert generate_match_slug("Long Table Brewhouse") == "long-table-brewhouse"
    assert generate_match_slug("St. Julien Hotel & Spa") == "st-julien-hotel-spa"
    assert generate_match_slug("  --Mercury  Cafe-- ") == "mercury-cafe"


def test_tokenize_and_jaccard():
    assert tokenize("Hotel & Spa") == {"hotel", "and", "spa"}
    assert token_jaccard_score({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)
    assert token_jaccard_score(set(), set()) == 0.0


def test_score_venue_match(catalog):
    assert score_venue_match("dazzle", catalog[0]) == 1.0
    assert score_venue_match("long-table-brewhouse", catalog[2]) == 0.95
    assert score_venue_match("Mercury Cafe Denver", catalog[1]) >= AMBIGUOUS_THRESHOLD
    assert score_venue_match("Joe's Garage", catalog[0]) < AMBIGUOUS_THRESHOLD
    fuzzy = score_venue_match("Venue Lounge The", catalog[5])
    assert 0 <= fuzzy < 0.95


def test_extract_venue_name_from_message(catalog):
    assert extract_venue_name_from_message("Open mic at Dazzle next Tuesday", catalog) == "Dazzle"
    assert (
        extract_venue_name_from_message("Playing at Long Table Brewhouse tonight", catalog)
        == "Long Table Brewhouse"
    )
    assert extract_venue_name_from_message("show at mercury cafe", catalog) == "Mercury Cafe"
    assert extract_venue_name_from_message("Just a random event somewhere", catalog) is None
    assert extract_venue_name_from_message("", catalog) is None
    assert extract_venue_name_from_message("The crowd was dazzled", catalog) is None


def test_longest_catalog_name_wins():
    catalog = [
        VenueCatalogEntry(id="a", name="The Venue"),
        VenueCatalogEntry(id="b", name="The Venue Lounge"),
    ]
    assert extract_venue_name_from_message("jam at the venue lounge", catalog) == "The Venue Lounge"


def test_alias_helpers():
    assert normalize_alias("L.T.B!") == "ltb"
    assert generate_acronym_alias("Long Table Brewhouse") == "ltb"
    assert generate_acronym_alias("The Venue Lounge") == "vl"
    assert generate_acronym_alias("Dazzle") is None


def test_alias_index_includes_acronyms_and_curated_overrides(catalog):
    index = build_venue_alias_index(catalog)
    assert [entry.id for entry in index["ltb"]] == ["v3"]
    for alias in CURATED_ALIAS_OVERRIDES["long-table-brewhouse"]:
        assert "v3" in [entry.id for entry in index[normalize_alias(alias)]]


def test_alias_extraction_from_message(catalog):
    index = build_venue_alias_index(catalog)
    assert extract_venue_alias_from_message("Open mic at LTB this Friday", index) == "ltb"
    assert extract_venue_alias_from_message("Songs at the Long Table tonight", index) == "longtable"
    assert extract_venue_alias_from_message("Open mic somewhere fun", index) is None


def test_stopword_aliases_never_match_sentences():
    index = build_venue_alias_index([VenueCatalogEntry(id="v1", name="Art Theater")])
    assert "at" not in index
    assert extract_venue_alias_from_message("Open mic at 7pm", index) is None


def _input(catalog, **overrides):
    return VenueResolverInput(venue_catalog=catalog, **overrides)


def test_online_explicit(catalog):
    result = resolve_venue(
        _input(catalog, draft_location_mode="online", draft_online_url="https://zoom.us/j/123")
    )
    assert result == OnlineExplicit(url="https://zoom.us/j/123")
    assert resolve_venue(
        _input(catalog, draft_location_mode="online", draft_online_url="  ")
    ).status != "online_explicit"
    assert resolve_venue(
        _input(catalog, draft_location_mode="venue", draft_online_url="https://zoom.us/j/123")
    ).status != "online_explicit"


def test_valid_venue_id_is_llm_validated(catalog):
    assert resolve_venue(_input(catalog, draft_venue_id="v1")) == Resolved(
        venue_id="v1", venue_name="Dazzle", confidence=1.0, source="llm_validated"
    )


def test_stale_venue_id_falls_through_to_name(catalog):
    result = resolve_venue(_input(catalog, draft_venue_id="missing", draft_venue_name="Dazzle"))
    assert isinstance(result, Resolved)
    assert result.venue_id == "v1"
    assert result.source == "server_exact"


@pytest.mark.parametrize(
    ("name", "venue_id"),
    [("Dazzle", "v1"), ("mercury cafe", "v2"), ("St Julien Hotel and Spa", "v5")],
)
def test_exact_name_matches(catalog, name, venue_id):
    result = resolve_venue(_input(catalog, draft_venue_name=name))
    assert result == Resolved(
        venue_id=venue_id,
        venue_name=next(entry.name for entry in catalog if entry.id == venue_id),
        confidence=1.0,
        source="server_exact",
    )


def test_similar_names_are_ambiguous(catalog):
    result = resolve_venue(_input(catalog, draft_venue_name="The Venue"))
    assert isinstance(result, Ambiguous)
    ids = [candidate.id for candidate in result.candidates]
    assert {"v6", "v7"} <= set(ids)
    assert len(result.candidates) <= MAX_AMBIGUOUS_CANDIDATES
    scores = [candidate.score for candidate in result.candidates]
    assert scores == sorted(scores, reverse=True)
    assert result.input_name == "The Venue"


def test_close_strong_scores_are_ambiguous():
    catalog = [
        VenueCatalogEntry(id="a", name="Red Rocks Amphitheatre Upper Lot"),
        VenueCatalogEntry(id="b", name="Red Rocks Amphitheatre Lower Lot"),
    ]
    result = resolve_venue(_input(catalog, draft_venue_name="Red Rocks Amphitheatre Lot"))
    assert isinstance(result, Ambiguous)
    assert {candidate.id for candidate in result.candidates} == {"a", "b"}


def test_unknown_venue_is_unresolved(catalog):
    assert resolve_venue(_input(catalog, draft_venue_name="Joe's Garage")) == Unresolved(
        input_name="Joe's Garage"
    )


def test_name_and_alias_from_message(catalog):
    by_name = resolve_venue(_input(catalog, user_message="Open mic at Dazzle next Tuesday at 7pm"))
    assert isinstance(by_name, Resolved) and by_name.venue_id == "v1"

    by_alias = resolve_venue(_input(catalog, user_message="Open mic at LTB this Friday"))
    assert by_alias == Resolved(
        venue_id="v3",
        venue_name="Long Table Brewhouse",
        confidence=ALIAS_CONFIDENCE,
        source="server_alias",
    )


def test_alias_from_draft_name(catalog):
    result = resolve_venue(_input(catalog, draft_venue_name="LTB"))
    assert isinstance(result, Resolved)
    assert result.venue_id == "v3"
    assert result.source == "server_alias"


def test_alias_collision_is_ambiguous():
    catalog = [
        VenueCatalogEntry(id="a", name="Long Table Brewing", slug="long-table-brewing"),
        VenueCatalogEntry(id="b", name="Lake Town Bistro", slug="lake-town-bistro"),
    ]
    result = resolve_venue(
        _input(catalog, draft_venue_name="LTB", user_message="Open mic at LTB")
    )
    assert isinstance(result, Ambiguous)
    assert {candidate.id for candidate in result.candidates} == {"a", "b"}


def test_custom_location_preserved_unless_strong_match(catalog):
    custom = resolve_venue(
        _input(catalog, draft_venue_name="My Backyard", is_custom_location=True)
    )
    assert custom == CustomLocation(name="My Backyard")

    redirected = resolve_venue(
        _input(catalog, draft_venue_name="Dazzle", is_custom_location=True)
    )
    assert isinstance(redirected, Resolved)
    assert redirected.venue_id == "v1"


def test_no_hints_and_empty_catalog(catalog):
    assert resolve_venue(_input(catalog, user_message="some event")) == Unresolved(input_name=None)
    assert resolve_venue(_input([], draft_venue_name="Dazzle")).status == "unresolved"


def test_malformed_inputs_never_raise(catalog):
    weird = _input(
        catalog + ["not an entry", VenueCatalogEntry(id="v9", name="")],
        draft_venue_id=42,
        draft_venue_name=["Dazzle"],
        user_message=None,
    )
    assert resolve_venue(weird) == Unresolved(input_name=None)


def test_thresholds():
    assert RESOLVE_THRESHOLD == 0.80
    assert AMBIGUOUS_THRESHOLD == 0.40


def test_result_variants_support_match(catalog):
    match resolve_venue(_input(catalog, draft_venue_name="Dazzle")):
        case Resolved(venue_id=venue_id):
            assert venue_id == "v1"
        case _:
            pytest.fail("expected a resolved venue")


def test_has_venue_signals_in_draft():
    assert has_venue_signals_in_draft({"venue_id": "v1"})
    assert has_venue_signals_in_draft({"custom_location_name": "My Backyard"})
    assert has_venue_signals_in_draft({"online_url": "https://zoom.us/j/1"})
    assert not has_venue_signals_in_draft({"location_mode": "venue"})
    assert not has_venue_signals_in_draft({"venue_name": "   "})


def test_should_resolve_venue_gates_by_mode():
    assert should_resolve_venue(mode="create", has_location_intent=False, draft_payload={})
    assert not should_resolve_venue(
        mode="edit_occurrence", has_location_intent=True, draft_payload={"venue_id": "v1"}
    )
    assert not should_resolve_venue(mode="edit_series", has_location_intent=False, draft_payload={})
    assert should_resolve_venue(mode="edit_series", has_location_intent=True, draft_payload={})
    assert should_resolve_venue(
        mode="edit_series", has_location_intent=False, draft_payload={"venue_name": "Dazzle"}
    )


def test_names_inside_longer_words_do_not_resolve(catalog):
    result = resolve_venue(_input(catalog, user_message="The crowd was dazzled last night"))
    assert not isinstance(result, Resolved)
