"""Shared pytest fixtures for happenings."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Keep a developer's happenings.toml out of the test run.
os.environ.setdefault("HAPPENINGS_CONFIG", str(PROJECT_ROOT / "tests" / "missing.toml"))

from happenings.venues import VenueCatalogEntry


@pytest.fixture()
def catalog() -> list[VenueCatalogEntry]:
    """A small catalog of real-looking Denver venues."""

    return [
        VenueCatalogEntry(id="v1", name="Dazzle", slug="dazzle"),
        VenueCatalogEntry(id="v2", name="Mercury Cafe", slug="mercury-cafe"),
        VenueCatalogEntry(id="v3", name="Long Table Brewhouse", slug="long-table-brewhouse"),
        VenueCatalogEntry(id="v4", name="Brewery Rickoli", slug="brewery-rickoli"),
        VenueCatalogEntry(id="v5", name="St. Julien Hotel & Spa", slug="st-julien-hotel-spa"),
        VenueCatalogEntry(id="v6", name="The Venue Lounge", slug="the-venue-lounge"),
        VenueCatalogEntry(id="v7", name="The Venue Bar", slug="the-venue-bar"),
        VenueCatalogEntry(id="v8", name="Sunshine Studios", slug="sunshine-studios"),
    ]
