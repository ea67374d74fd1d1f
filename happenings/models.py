"""Pydantic payloads for JSON handed to happenings from outside.

Payloads validate shape only; date keys and recurrence rules are checked by
the core when the values are used.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Literal

from pydantic import BaseModel, Field

from .occurrences import OccurrenceOverride
from .venues import CURATED_ALIAS_OVERRIDES, VenueCatalogEntry, VenueResolverInput


class VenuePayload(BaseModel):
    id: str
    name: str | None = None


class EventFieldsPayload(BaseModel):
    id: str = ""
    title: str | None = None
    description: str | None = None
    event_date: str | None = Field(None, description="Anchor date as YYYY-MM-DD")
    day_of_week: str | None = Field(None, description="Weekday name, e.g. Monday")
    recurrence_rule: str | None = Field(
        None, description="Legacy rule text (weekly, 2nd/4th, custom) or an RRULE"
    )
    custom_dates: list[str] | None = None
    recurrence_end_date: str | None = None
    start_time: str | None = Field(None, description="Denver wall-clock HH:MM[:SS]")
    end_time: str | None = None
    location: str | None = None
    venue_id: str | None = None
    venue: VenuePayload | None = None


class VenueCatalogEntryPayload(BaseModel):
    id: str
    name: str
    slug: str | None = None

    def to_entry(self) -> VenueCatalogEntry:
        return VenueCatalogEntry(id=self.id, name=self.name, slug=self.slug)


class VenueResolvePayload(BaseModel):
    draft_venue_id: str | None = None
    draft_venue_name: str | None = None
    user_message: str = ""
    venue_catalog: list[VenueCatalogEntryPayload] = Field(default_factory=list)
    draft_location_mode: str | None = None
    draft_online_url: str | None = None
    is_custom_location: bool = False

    def to_input(
        self,
        alias_overrides: Mapping[str, Iterable[str]] = CURATED_ALIAS_OVERRIDES,
    ) -> VenueResolverInput:
        return VenueResolverInput(
            draft_venue_id=self.draft_venue_id,
            draft_venue_name=self.draft_venue_name,
            user_message=self.user_message,
            venue_catalog=tuple(entry.to_entry() for entry in self.venue_catalog),
            draft_location_mode=self.draft_location_mode,
            draft_online_url=self.draft_online_url,
            is_custom_location=self.is_custom_location,
            alias_overrides=alias_overrides,
        )


class OccurrenceOverridePayload(BaseModel):
    event_id: str
    date_key: str
    status: Literal["normal", "cancelled"] = "normal"
    override_start_time: str | None = None
    override_notes: str | None = None
    override_cover_image_url: str | None = None

    def to_override(self) -> OccurrenceOverride:
        return OccurrenceOverride(
            event_id=self.event_id,
            date_key=self.date_key,
            status=self.status,
            override_start_time=self.override_start_time,
            override_notes=self.override_notes,
            override_cover_image_url=self.override_cover_image_url,
        )
