from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

EventType = Literal["play", "workshop", "camp", "cultural-program"]
EventStatus = Literal["upcoming", "past"]


def new_record_id() -> str:
    """Millisecond timestamp id, as assigned to items created in the admin panel."""
    return str(int(time.time() * 1000))


class Leader(BaseModel):
    id: str
    name: str
    position: str
    photo: str | None = None
    email: str | None = None
    phone: str | None = None
    order: int = 0


class Event(BaseModel):
    id: str
    title: str
    description: str
    date: str
    type: EventType = "cultural-program"
    venue: str | None = None
    status: EventStatus = "upcoming"
    imageUrl: str | None = None
    images: list[str] = Field(default_factory=list)


class YouTubeVideo(BaseModel):
    id: str
    videoId: str
    title: str
    description: str | None = None


class NewspaperPublication(BaseModel):
    id: str
    title: str
    publicationName: str
    date: str
    description: str | None = None
    imageUrl: str | None = None
    externalLink: str | None = None


class AnnualReport(BaseModel):
    id: str
    year: str
    title: str
    description: str
    fileUrl: str | None = None


class OrganizationInfo(BaseModel):
    name: str
    foundedYear: int
    registeredYear: int
    mission: str
    description: str
    affiliations: list[str] = Field(default_factory=list)
    address: str = ""
    phone: str = ""
    email: str = ""
    pan: str = ""
    youtubeChannel: str = ""


class SiteSettings(BaseModel):
    adminUsername: str = "admin"
    adminPassword: str = "admin123"


DEFAULT_ORGANIZATION_INFO = OrganizationInfo(
    name="Sindhi Cultural Society",
    foundedYear=1982,
    registeredYear=1984,
    mission=(
        "To preserve and promote Indian culture, art, and the Sindhi language through theatre, "
        "workshops, and cultural programs."
    ),
    description="Sindhi Cultural Society, Jodhpur is a registered institution.",
)


def _events_order(events: list[Event]) -> list[Event]:
    upcoming = sorted((e for e in events if e.status == "upcoming"), key=lambda e: e.date)
    past = sorted((e for e in events if e.status == "past"), key=lambda e: e.date, reverse=True)
    return upcoming + past


@dataclass(frozen=True)
class Section:
    key: str
    adapter: TypeAdapter[Any]
    default: Callable[[], Any]
    order: Callable[[Any], Any] | None = None
    # Record type of list sections; items of these get server-assigned ids.
    item_model: type[BaseModel] | None = None

    def validate(self, raw: Any) -> Any:
        """Validate incoming data; raises pydantic.ValidationError."""
        return self.adapter.validate_python(raw)

    def dump(self, value: Any) -> Any:
        return self.adapter.dump_python(value, mode="json")

    def coerce(self, raw: Any) -> Any:
        """Typed value for a stored document, falling back to the default when unreadable."""
        if raw is None:
            return self.default()
        try:
            return self.validate(raw)
        except ValidationError as e:
            logger.warning("CONTENT %s: stored value does not validate, using default: %s", self.key, e)
            return self.default()

    def public_view(self, raw: Any) -> Any:
        value = self.coerce(raw)
        if self.order is not None:
            value = self.order(value)
        return self.dump(value)


SECTIONS: dict[str, Section] = {
    s.key: s
    for s in (
        Section(
            "leaders",
            TypeAdapter(list[Leader]),
            list,
            lambda xs: sorted(xs, key=lambda x: x.order),
            item_model=Leader,
        ),
        Section("events", TypeAdapter(list[Event]), list, _events_order, item_model=Event),
        Section("videos", TypeAdapter(list[YouTubeVideo]), list, item_model=YouTubeVideo),
        Section("publications", TypeAdapter(list[NewspaperPublication]), list, item_model=NewspaperPublication),
        Section(
            "annualReports",
            TypeAdapter(list[AnnualReport]),
            list,
            lambda xs: sorted(xs, key=lambda x: x.year, reverse=True),
            item_model=AnnualReport,
        ),
        Section(
            "organizationInfo",
            TypeAdapter(OrganizationInfo),
            lambda: DEFAULT_ORGANIZATION_INFO.model_copy(deep=True),
        ),
        Section("siteSettings", TypeAdapter(SiteSettings), SiteSettings),
    )
}

# Never served by the public site API.
PRIVATE_SECTIONS = frozenset({"siteSettings"})
