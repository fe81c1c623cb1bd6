"""Unified data models for lead qualification, contact flows and persisted state."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


# --- Parsed Field Models ---

@dataclass(slots=True, frozen=True)
class MagnitudeValue:
    """Monetary value parsed from free text.

    ``minimum`` and ``maximum`` are ``None`` when the text could not be parsed;
    callers must treat that as "unknown" rather than zero.
    """

    raw: Optional[str] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None

    @property
    def known(self) -> bool:
        return self.minimum is not None or self.maximum is not None

    def floor(self) -> float:
        """Return the explicit minimum, falling back to the maximum, else zero."""

        if self.minimum is not None:
            return self.minimum
        if self.maximum is not None:
            return self.maximum
        return 0.0


@dataclass(slots=True, frozen=True)
class Quantity:
    """Requested quantity: raw text, parsed number and the inferred unit."""

    raw: Optional[str] = None
    value: Optional[float] = None
    unit: Optional[str] = None


# --- Core Input Models ---

_WHITESPACE = re.compile(r"\s+")


@dataclass(slots=True)
class Lead:
    """One candidate inbound sales inquiry extracted from the portal."""

    lead_id: str
    company_name: str = "N/A"
    enquiry_title: str = ""
    requirement: str = ""
    location: str = "N/A"
    timestamp_raw: str = "N/A"
    quantity: Quantity = field(default_factory=Quantity)
    category: Optional[str] = None
    fabric: Optional[str] = None
    probable_value: MagnitudeValue = field(default_factory=MagnitudeValue)
    source_position: int = 0

    @staticmethod
    def build_id(
        source_id: Optional[str],
        position: int,
        title: Optional[str],
        timestamp: Optional[str],
    ) -> str:
        """Return the source attribute when present, else a positional composite."""

        if source_id and source_id.strip():
            return source_id.strip()
        composite = f"{position}-{title or 'lead'}-{timestamp or 'time'}"
        return _WHITESPACE.sub("-", composite)

    def display_name(self) -> str:
        """Return a readable name for UI or logs."""
        if self.company_name and self.company_name != "N/A":
            return self.company_name
        return self.enquiry_title or self.lead_id

    def as_row(self) -> Dict[str, Any]:
        return {
            "lead_id": self.lead_id,
            "company_name": self.company_name,
            "enquiry_title": self.enquiry_title,
            "requirement": self.requirement,
            "location": self.location,
            "timestamp": self.timestamp_raw,
            "quantity_raw": self.quantity.raw,
            "quantity": self.quantity.value,
            "quantity_unit": self.quantity.unit,
            "category": self.category,
            "fabric": self.fabric,
            "probable_value_raw": self.probable_value.raw,
            "probable_value_min": self.probable_value.minimum,
            "probable_value_max": self.probable_value.maximum,
            "source_position": self.source_position,
        }


# --- Filtering Models ---

@dataclass(slots=True, frozen=True)
class RuleSet:
    """Immutable filter configuration. Replaced as a whole, never mutated."""

    keywords: Tuple[str, ...] = ()
    excluded_locations: Tuple[str, ...] = ()
    categories: Tuple[str, ...] = ()
    min_quantity: float = 0.0
    quantity_unit: str = ""
    min_order_value: float = 0.0
    contact_delay_minutes: Tuple[int, ...] = (1, 5, 10)
    currency_symbol: str = "₹"

    @property
    def category_set(self) -> FrozenSet[str]:
        return frozenset(category.lower() for category in self.categories)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {key: list(value) if isinstance(value, tuple) else value for key, value in data.items()}


@dataclass(slots=True, frozen=True)
class Verdict:
    """Outcome of the filter evaluator for one lead."""

    passed: bool
    reason: str
    suggested_delay_minutes: int = 0
    transient: bool = False


@dataclass(slots=True)
class LeadEvaluation:
    lead: Lead
    verdict: Verdict

    @property
    def passed(self) -> bool:
        return self.verdict.passed


# --- Persisted State Models ---

@dataclass
class ContactSuccessEntry:
    """A confirmed outreach recorded in the contact history."""

    lead_id: str
    contacted_at: str
    company_name: Optional[str] = None
    enquiry_title: Optional[str] = None
    location: Optional[str] = None
    probable_value: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContactSuccessEntry":
        return cls(
            lead_id=str(data.get("lead_id", "")),
            contacted_at=str(data.get("contacted_at", "")),
            company_name=data.get("company_name"),
            enquiry_title=data.get("enquiry_title"),
            location=data.get("location"),
            probable_value=data.get("probable_value"),
        )


@dataclass
class SuspensionState:
    """Durable record of a capacity-exhaustion pause."""

    active: bool
    resume_at_epoch_ms: int
    restore_automation_on_resume: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["SuspensionState"]:
        if not data or not data.get("active"):
            return None
        return cls(
            active=True,
            resume_at_epoch_ms=int(data.get("resume_at_epoch_ms", 0)),
            restore_automation_on_resume=bool(data.get("restore_automation_on_resume", False)),
        )


# --- Cycle Results ---

@dataclass
class CycleReport:
    """Summary of one scrape -> filter -> dispatch pass."""

    trigger: str
    total_leads: int = 0
    evaluations: List[LeadEvaluation] = field(default_factory=list)
    qualified: List[Lead] = field(default_factory=list)
    deferred: List[Lead] = field(default_factory=list)
    skipped_known: int = 0
    contacted: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    logged: bool = False
    suspended: bool = False

    @property
    def rejected(self) -> int:
        return self.total_leads - len(self.qualified)

    def summary(self) -> Dict[str, Any]:
        return {
            "trigger": self.trigger,
            "total_leads": self.total_leads,
            "qualified": len(self.qualified),
            "rejected": self.rejected,
            "deferred": len(self.deferred),
            "skipped_known": self.skipped_known,
            "contacted": list(self.contacted),
            "failures": dict(self.failures),
            "logged": self.logged,
            "suspended": self.suspended,
        }


__all__ = [
    "ContactSuccessEntry",
    "CycleReport",
    "Lead",
    "LeadEvaluation",
    "MagnitudeValue",
    "Quantity",
    "RuleSet",
    "SuspensionState",
    "Verdict",
]
