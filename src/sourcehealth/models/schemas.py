from __future__ import annotations

from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class SearchOutcome(str, Enum):
    MATCH = "match"
    NO_MATCH = "no_match"
    EMPTY = "empty"
    ERROR = "error"
    SKIPPED = "skipped"
    DISABLED = "disabled"


class EndpointStatus(str, Enum):
    CRITICAL = "critical"
    DOWN = "down"
    UP = "up"
    DISABLED = "disabled"


# Report sort order: most urgent first
STATUS_ORDER: dict[EndpointStatus, int] = {
    EndpointStatus.CRITICAL: 1,
    EndpointStatus.DOWN: 2,
    EndpointStatus.UP: 3,
    EndpointStatus.DISABLED: 4,
}

# searchStatus values written by the first version of the report
LEGACY_SEARCH_STATUS: dict[str, SearchOutcome] = {
    "✅": SearchOutcome.MATCH,
    "不匹配": SearchOutcome.NO_MATCH,
    "无结果": SearchOutcome.EMPTY,
    "❌": SearchOutcome.ERROR,
    "-": SearchOutcome.SKIPPED,
    "禁用": SearchOutcome.DISABLED,
}


class Endpoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    base_url: str
    id: str = "-"
    disabled: bool = False

    @property
    def key(self) -> str:
        return self.base_url


class EndpointEntry(BaseModel):
    """One row of the endpoint config file."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    name: str
    base_url: str = Field(validation_alias=AliasChoices("baseUrl", "api", "base_url"))
    id: str | None = None
    enabled: bool = True

    def to_endpoint(self) -> Endpoint:
        return Endpoint(
            name=self.name,
            base_url=self.base_url,
            id=self.id or "-",
            disabled=self.enabled is False,
        )


class ProbeResult(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = ""
    endpoint_key: str = Field(alias="api")
    reachable: bool = Field(alias="success")
    search_outcome: SearchOutcome = Field(default=SearchOutcome.SKIPPED, alias="searchStatus")

    @field_validator("search_outcome", mode="before")
    @classmethod
    def _map_legacy_outcome(cls, value):
        if isinstance(value, str) and value in LEGACY_SEARCH_STATUS:
            return LEGACY_SEARCH_STATUS[value]
        return value


class RunRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: str  # YYYY-MM-DD, UTC
    results: list[ProbeResult] = []

    def result_for(self, key: str) -> ProbeResult | None:
        return next((r for r in self.results if r.endpoint_key == key), None)


class EndpointStats(BaseModel):
    name: str
    id: str = "-"
    base_url: str
    disabled: bool = False
    ok_count: int = 0
    fail_count: int = 0
    streak: int = 0
    success_rate: float | None = None
    trend: list[bool | None] = []
    latest_search_outcome: SearchOutcome | None = None
    status: EndpointStatus = EndpointStatus.DOWN

    @property
    def success_rate_display(self) -> str:
        if self.success_rate is None:
            return "-"
        return f"{self.success_rate:.1f}%"

    @property
    def trend_display(self) -> str:
        return "".join("-" if t is None else ("✓" if t else "✗") for t in self.trend)


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    endpoints_total: int = 0
    last_run_date: str | None = None


class RunRequest(BaseModel):
    keyword: str | None = None
