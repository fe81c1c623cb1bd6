import pandas as pd
import pytest

from lead_agent.export import (
    HISTORY_COLUMNS,
    evaluations_to_dataframe,
    export_evaluations,
    export_history,
    history_to_dataframe,
    write_dataframe,
)
from lead_agent.models import ContactSuccessEntry, LeadEvaluation, Verdict


def _history():
    return [
        ContactSuccessEntry(
            lead_id=f"lead-{index}",
            contacted_at=f"2024-01-0{index + 1}T10:00:00+00:00",
            company_name=f"Company {index}",
            enquiry_title="School uniform shirts",
            location="Pune",
            probable_value="₹1 lakh",
        )
        for index in range(3)
    ]


def test_history_to_dataframe_lists_newest_first():
    dataframe = history_to_dataframe(_history())

    assert list(dataframe.columns) == HISTORY_COLUMNS
    assert dataframe["lead_id"].tolist() == ["lead-2", "lead-1", "lead-0"]


def test_evaluations_to_dataframe_marks_status(make_lead):
    evaluations = [
        LeadEvaluation(make_lead(0), Verdict(True, "Meets all criteria", 5)),
        LeadEvaluation(make_lead(1, location="Dubai"), Verdict(False, "Excluded location (dubai)")),
    ]

    dataframe = evaluations_to_dataframe(evaluations)

    assert dataframe["status"].tolist() == ["PASS", "REJECT"]
    assert dataframe.loc[1, "reason"] == "Excluded location (dubai)"
    assert dataframe.loc[0, "suggested_delay_minutes"] == 5
    assert pd.isna(dataframe.loc[1, "suggested_delay_minutes"])
    assert dataframe.loc[0, "probable_value"] == "₹1 lakh"


def test_export_history_to_csv(tmp_path):
    output = export_history(_history(), tmp_path / "out" / "contacted.csv")

    exported = pd.read_csv(output)
    assert exported["company_name"].tolist() == ["Company 2", "Company 1", "Company 0"]


def test_export_evaluations_to_excel(tmp_path, make_lead):
    pytest.importorskip("openpyxl")
    evaluations = [LeadEvaluation(make_lead(0), Verdict(True, "Meets all criteria", 1))]

    output = export_evaluations(evaluations, tmp_path / "evaluations.xlsx")

    exported = pd.read_excel(output, sheet_name="Evaluations", engine="openpyxl")
    assert exported.loc[0, "lead_id"] == "lead-0"


def test_write_dataframe_rejects_unknown_extension(tmp_path):
    with pytest.raises(ValueError):
        write_dataframe(pd.DataFrame(), tmp_path / "out.parquet")
