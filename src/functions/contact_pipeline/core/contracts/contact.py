"""Contact and thesis records handled by the pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

INVESTOR_CONTACT_TYPES = ("GP", "Angel", "Family Office", "PE", "VC")


class Stage(str, Enum):
    """Pipeline stages in execution order."""

    ENRICHMENT = "enrichment"
    EXTRACTION = "extraction"
    EMBEDDING = "embedding"

    @property
    def next(self) -> Optional["Stage"]:
        order = list(Stage)
        index = order.index(self)
        return order[index + 1] if index + 1 < len(order) else None


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(slots=True)
class ContactRecord:
    """Subset of a contact row needed by the pipeline."""

    id: str
    name: Optional[str] = None
    company: Optional[str] = None
    title: Optional[str] = None
    bio: Optional[str] = None
    investor_notes: Optional[str] = None
    website: Optional[str] = None
    contact_type: List[str] = field(default_factory=list)
    is_investor: bool = False
    has_thesis: bool = False
    has_embedding: bool = False

    @classmethod
    def from_row(
        cls,
        row: Dict[str, Any],
        *,
        has_thesis: bool = False,
        has_embedding: Optional[bool] = None,
    ) -> "ContactRecord":
        if has_embedding is None:
            has_embedding = row.get("bio_embedding") is not None
        raw_types = row.get("contact_type") or []
        if isinstance(raw_types, str):
            raw_types = [raw_types]
        return cls(
            id=str(row["id"]),
            name=_clean(row.get("name")),
            company=_clean(row.get("company")),
            title=_clean(row.get("title")),
            bio=row.get("bio"),
            investor_notes=_clean(row.get("investor_notes")),
            website=_clean(row.get("website")),
            contact_type=[str(item) for item in raw_types if item],
            is_investor=bool(row.get("is_investor")),
            has_thesis=has_thesis,
            has_embedding=has_embedding,
        )

    @property
    def is_investor_profile(self) -> bool:
        return self.is_investor or any(t in INVESTOR_CONTACT_TYPES for t in self.contact_type)

    def needs(self, stage: Stage) -> bool:
        """Return True when the stage's completion predicate is still false."""
        if stage is Stage.ENRICHMENT:
            return bool(self.name) and self.bio is None
        if stage is Stage.EXTRACTION:
            return self.bio is not None and not self.has_thesis
        return self.bio is not None and not self.has_embedding

    def profile_text(self, separator: str = "\n") -> str:
        """Concatenate bio, title and investor notes for downstream prompts."""
        parts = [self.bio, self.title, self.investor_notes]
        return separator.join(part.strip() for part in parts if part and part.strip())


class ThesisPayload(BaseModel):
    """Structured investment profile extracted from a contact's text."""

    model_config = ConfigDict(extra="ignore")

    sectors: List[str] = Field(default_factory=list)
    stages: List[str] = Field(default_factory=list)
    check_sizes: List[str] = Field(default_factory=list)
    geos: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    summary: str = Field(default="")

    @field_validator("sectors", "stages", "check_sizes", "geos", "keywords", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("summary", mode="before")
    @classmethod
    def _summary_none(cls, value: Any) -> Any:
        return "" if value is None else value

    def to_row(self, contact_id: str) -> Dict[str, Any]:
        """Map onto the ``theses`` table columns."""
        return {
            "contact_id": contact_id,
            "sectors": self.sectors,
            "stages": self.stages,
            "check_sizes": self.check_sizes,
            "geos": self.geos,
            "personas": self.keywords,
            "notes": self.summary,
        }


class BioResearchPayload(BaseModel):
    """Web research answer describing a contact."""

    model_config = ConfigDict(extra="ignore")

    bio: Optional[str] = None
    title: Optional[str] = None
    company: Optional[str] = None
    found: bool = False


class InvestorResearchPayload(BaseModel):
    """Web research answer describing an investor's thesis."""

    model_config = ConfigDict(extra="ignore")

    thesis_summary: Optional[str] = None
    sectors: List[str] = Field(default_factory=list)
    stages: List[str] = Field(default_factory=list)
    check_sizes: List[str] = Field(default_factory=list)
    geographic_focus: List[str] = Field(default_factory=list)
    found: bool = False

    @field_validator("sectors", "stages", "check_sizes", "geographic_focus", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    def as_notes(self) -> str:
        lines: List[str] = []
        if self.thesis_summary:
            lines.append(self.thesis_summary.strip())
        for label, values in (
            ("Sectors", self.sectors),
            ("Stages", self.stages),
            ("Check sizes", self.check_sizes),
            ("Geographic focus", self.geographic_focus),
        ):
            if values:
                lines.append(f"{label}: {', '.join(values)}")
        return "\n".join(lines)


@dataclass(slots=True)
class UnitOutcome:
    """Result of processing one contact for one stage."""

    contact_id: str
    stage: Stage
    success: bool
    error: Optional[str] = None
    updates: Dict[str, Any] = field(default_factory=dict)
