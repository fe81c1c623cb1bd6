"""Export contact history and rule evaluations to CSV or Excel."""
from __future__ import annotations

from pathlib import Path
from typing import MutableMapping, Optional, Sequence, Union

import pandas as pd

from .models import ContactSuccessEntry, LeadEvaluation
from .parsing import format_value_range

PathLike = Union[str, Path]

HISTORY_COLUMNS = ["lead_id", "contacted_at", "company_name", "enquiry_title", "location", "probable_value"]


def history_to_dataframe(entries: Sequence[ContactSuccessEntry]) -> pd.DataFrame:
    """Convert contact history into a :class:`pandas.DataFrame`, newest first."""

    rows = [entry.to_dict() for entry in reversed(list(entries))]
    return pd.DataFrame(rows, columns=HISTORY_COLUMNS)


def evaluations_to_dataframe(evaluations: Sequence[LeadEvaluation], *, currency_symbol: str = "₹") -> pd.DataFrame:
    rows = []
    for evaluation in evaluations:
        lead = evaluation.lead
        rows.append(
            {
                "lead_id": lead.lead_id,
                "company_name": lead.company_name,
                "enquiry_title": lead.enquiry_title,
                "location": lead.location,
                "quantity": lead.quantity.raw,
                "category": lead.category,
                "probable_value": format_value_range(lead.probable_value, currency_symbol),
                "status": "PASS" if evaluation.passed else "REJECT",
                "reason": evaluation.verdict.reason,
                "suggested_delay_minutes": evaluation.verdict.suggested_delay_minutes if evaluation.passed else None,
            }
        )
    return pd.DataFrame(rows)


def write_dataframe(
    dataframe: pd.DataFrame,
    path: PathLike,
    *,
    sheet_name: str = "Leads",
    exporter_kwargs: Optional[MutableMapping[str, object]] = None,
) -> Path:
    exporter_kwargs = dict(exporter_kwargs or {})
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    suffix = output_path.suffix.lower()

    if suffix in {".csv", ".tsv"}:
        if suffix == ".tsv":
            exporter_kwargs.setdefault("sep", "\t")
        dataframe.to_csv(output_path, index=False, **exporter_kwargs)
        return output_path

    if suffix in {".xlsx", ".xlsm"}:
        engine = exporter_kwargs.pop("engine", None) or "openpyxl"
        dataframe.to_excel(output_path, index=False, sheet_name=sheet_name, engine=engine, **exporter_kwargs)
        return output_path

    raise ValueError(f"Unsupported export file extension: {suffix}")


def export_history(entries: Sequence[ContactSuccessEntry], path: PathLike) -> Path:
    return write_dataframe(history_to_dataframe(entries), path, sheet_name="Contacted")


def export_evaluations(evaluations: Sequence[LeadEvaluation], path: PathLike, *, currency_symbol: str = "₹") -> Path:
    return write_dataframe(
        evaluations_to_dataframe(evaluations, currency_symbol=currency_symbol), path, sheet_name="Evaluations"
    )


__all__ = [
    "evaluations_to_dataframe",
    "export_evaluations",
    "export_history",
    "history_to_dataframe",
    "write_dataframe",
]
