from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_KEYWORDS: tuple[str, ...] = ("空き", "○", "◯", "予約可")
# Labels of the per-row apply control; a row offering one is open whatever its status text.
APPLY_MARKERS: tuple[str, ...] = ("申込",)


class SiteKind(str, Enum):
    GENERIC = "generic"
    EKANAGAWA = "ekanagawa"
    CHIGASAKI = "chigasaki"

    @classmethod
    def _missing_(cls, value: object) -> "SiteKind | None":
        aliases = {"sitea": cls.EKANAGAWA, "siteb": cls.CHIGASAKI}
        if isinstance(value, str):
            return aliases.get(value.lower())
        return None


class Target(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1, description="Display name of the facility page")
    url: str = Field(..., min_length=1, description="Entry URL for the target")
    result_selector: str = Field(
        default="body", alias="resultSelector", description="CSS selector of the result region"
    )
    keywords: tuple[str, ...] | None = Field(
        default=None, description="Vacancy markers; defaults to DEFAULT_KEYWORDS"
    )
    kind: SiteKind = SiteKind.GENERIC
    facility_path: tuple[str | tuple[str, ...], ...] = Field(
        default=(),
        alias="facilityPath",
        description="Navigation steps; each step is one label or a list of alternatives",
    )
    location: str = Field(default="", description="Municipality or site group for dedup keys")
    facility_query: str = Field(
        default="",
        alias="facilityQuery",
        description="Facility name typed into the site's search box and then clicked",
    )
    times: tuple[str, ...] | None = Field(
        default=None, description="Only report these time ranges, e.g. 09:00-11:00"
    )
    courts: tuple[str, ...] | None = Field(
        default=None, description="Only report courts whose label contains one of these"
    )

    @property
    def effective_keywords(self) -> tuple[str, ...]:
        return self.keywords or DEFAULT_KEYWORDS

    @property
    def steps(self) -> list[tuple[str, ...]]:
        """Facility path with every step expanded to its tuple of alternatives."""
        return [(step,) if isinstance(step, str) else tuple(step) for step in self.facility_path]


class TargetConfig(BaseModel):
    targets: list[Target]


class OpenSlot(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: date
    time_range: str = ""
    court: str = ""
    window: str = ""


class NotifiedKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    location: str
    facility: str
    date: date
    time_range: str = ""
    court: str = ""

    @property
    def identity(self) -> str:
        return "|".join(
            [self.location, self.facility, self.date.isoformat(), self.time_range, self.court]
        )

    @classmethod
    def for_slot(cls, target: Target, slot: OpenSlot) -> "NotifiedKey":
        return cls(
            location=target.location,
            facility=target.name,
            date=slot.date,
            time_range=slot.time_range,
            court=slot.court,
        )


class ScanResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    hit: bool = False
    sample: str = ""
    elapsed_ms: int = 0
    error: str | None = None
    open_slots: tuple[OpenSlot, ...] = ()
    new_keys: tuple[str, ...] = ()


class RunReport(BaseModel):
    started_at: datetime
    finished_at: datetime | None = None
    results: list[ScanResult] = Field(default_factory=list)
    notified: bool = False

    @property
    def hit_count(self) -> int:
        return sum(1 for r in self.results if r.hit)

    @property
    def new_key_count(self) -> int:
        return sum(len(r.new_keys) for r in self.results)

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.results if r.error)
