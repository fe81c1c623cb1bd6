"""Loading leads from spreadsheets for offline runs and rule previews."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence, Union

import pandas as pd

from .adapters.cards import lead_from_fields
from .models import Lead

PathLike = Union[str, Path]

_FIELD_SYNONYMS: Mapping[str, Sequence[str]] = {
    "lead_id": ("lead_id", "id", "source_id", "offer_id"),
    "title": ("enquiry_title", "title", "product"),
    "company": ("company_name", "company", "buyer", "buyer_name"),
    "requirement": ("requirement", "description", "details"),
    "location": ("location", "address"),
    "city": ("city",),
    "state": ("state",),
    "timestamp": ("timestamp", "date", "posted_at"),
    "quantity": ("quantity", "qty"),
    "category": ("category", "interested_in"),
    "fabric": ("fabric", "material"),
    "order_value": ("probable_order_value", "order_value", "value"),
}


class UnsupportedFileTypeError(ValueError):
    """Raised when an unsupported file format is passed to the loader."""


def load_leads(
    path: PathLike,
    *,
    column_mapping: Optional[Mapping[str, str]] = None,
    sheet_name: Union[str, int, None] = 0,
    loader_kwargs: Optional[MutableMapping[str, Any]] = None,
) -> List[Lead]:
    """Load leads from a CSV or Excel sheet.

    Columns are matched case-insensitively against known synonyms
    (``quantity``/``qty``, ``probable_order_value``/``order_value`` ...);
    ``column_mapping`` overrides the match for individual fields. Each row's
    position in the sheet becomes the lead's source position.
    """

    dataframe = read_dataframe(path, sheet_name=sheet_name, loader_kwargs=loader_kwargs)
    mapping = dict(column_mapping or {})
    columns = {field: _resolve_column(field, dataframe.columns, mapping) for field in _FIELD_SYNONYMS}

    leads: List[Lead] = []
    for _, row in dataframe.iterrows():
        if _row_is_empty(row):
            continue
        values: Dict[str, Optional[str]] = {
            field: _clean_text(row[column]) if column is not None else None for field, column in columns.items()
        }
        leads.append(lead_from_fields(values, len(leads)))
    return leads


def read_dataframe(
    path: PathLike,
    *,
    sheet_name: Union[str, int, None] = 0,
    loader_kwargs: Optional[MutableMapping[str, Any]] = None,
) -> pd.DataFrame:
    loader_kwargs = dict(loader_kwargs or {})
    path_obj = Path(path)
    suffix = path_obj.suffix.lower()

    if suffix in {".csv", ".tsv"}:
        if suffix == ".tsv":
            loader_kwargs.setdefault("sep", "\t")
        loader_kwargs.setdefault("dtype", str)
        return pd.read_csv(path_obj, **loader_kwargs)

    if suffix in {".xlsx", ".xlsm"}:
        return pd.read_excel(
            path_obj, sheet_name=sheet_name, engine=loader_kwargs.pop("engine", None) or "openpyxl", **loader_kwargs
        )

    raise UnsupportedFileTypeError(f"Unsupported file extension: {path_obj.suffix}")


def _row_is_empty(row: pd.Series) -> bool:
    return all(pd.isna(value) or (isinstance(value, str) and not value.strip()) for value in row.values)


def _resolve_column(field: str, available: Iterable[Any], mapping: Mapping[str, str]) -> Optional[str]:
    if field in mapping:
        return mapping[field]
    synonyms = _FIELD_SYNONYMS[field]
    normalised = {str(column).strip().lower().replace(" ", "_"): column for column in available}
    for synonym in synonyms:
        if synonym in normalised:
            return normalised[synonym]
    return None


def _clean_text(value: Any) -> Optional[str]:
    if pd.isna(value):
        return None
    text = str(value).strip()
    return text or None


__all__ = ["UnsupportedFileTypeError", "load_leads", "read_dataframe"]
