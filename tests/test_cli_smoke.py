"""Smoke tests for the CLI entry point."""
from __future__ import annotations

import json

import pytest

from lead_agent import __main__
from lead_agent.cli import main

LEADS_CSV = (
    "lead_id,title,company,city,quantity,order_value,category\n"
    "101,School uniform shirts,Green Valley School,Pune,500 Piece,₹1 Lakh,School Uniform\n"
    "102,Office chairs,Desk Depot,Mumbai,40 Piece,₹20000,Furniture\n"
)


@pytest.fixture
def config_path(tmp_path):
    leads_path = tmp_path / "leads.csv"
    leads_path.write_text(LEADS_CSV, encoding="utf-8")
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "rules": {
                    "keywords": ["uniform"],
                    "excluded_locations": ["usa"],
                    "categories": ["school uniform"],
                    "min_quantity": 100,
                    "quantity_unit": "Piece",
                    "min_order_value": 50000,
                    "contact_delay_minutes": [0],
                },
                "schedule": {"min_leads": 0, "poll_interval_seconds": 0.01},
                "contact": {"settle_seconds": 0},
                "storage": {"path": str(tmp_path / "state" / "agent.json")},
                "adapters": {
                    "extraction": {
                        "class": "lead_agent.adapters.sample.StaticLeadSource",
                        "options": {"path": str(leads_path)},
                    },
                    "actions": {"class": "lead_agent.adapters.sample.ScriptedActions"},
                },
            }
        ),
        encoding="utf-8",
    )
    return path


def test_scan_prints_verdicts_and_exports(config_path, tmp_path, capsys) -> None:
    export_path = tmp_path / "evaluations.csv"

    exit_code = main(["--config", str(config_path), "scan", "--export", str(export_path)])

    assert exit_code == 0
    output = capsys.readouterr().out
    assert "PASS" in output and "Green Valley School" in output
    assert "REJECT" in output and "No required keyword found" in output
    assert "2 leads, 1 qualified" in output
    assert "Green Valley School" in export_path.read_text(encoding="utf-8")


def test_run_then_inspect_state(config_path, tmp_path, capsys) -> None:
    assert main(["--config", str(config_path), "run", "--duration", "1.5", "--no-heartbeat"]) == 0
    capsys.readouterr()

    assert main(["--config", str(config_path), "status"]) == 0
    status = json.loads(capsys.readouterr().out)
    assert status["contacted_leads"] == 1
    assert status["statistics"]["total_contacted"] == 1
    assert status["suspension"] is None

    assert main(["--config", str(config_path), "logs"]) == 0
    assert "Total leads: 2" in capsys.readouterr().out

    history_path = tmp_path / "contacted.csv"
    assert main(["--config", str(config_path), "export", str(history_path)]) == 0
    assert "101" in history_path.read_text(encoding="utf-8")


def test_logs_on_fresh_state(config_path, capsys) -> None:
    assert main(["--config", str(config_path), "logs", "--details"]) == 0

    assert "No logs recorded yet." in capsys.readouterr().out


def test_missing_configuration_file_fails(tmp_path) -> None:
    assert main(["--config", str(tmp_path / "absent.yaml"), "status"]) == 1


def test_module_entry_point_prints_help_without_arguments(capsys) -> None:
    exit_code = __main__.main([])

    assert exit_code == 2
    assert "python -m lead_agent" in capsys.readouterr().out


def test_module_entry_point_delegates_to_cli(config_path, capsys) -> None:
    assert __main__.main(["--config", str(config_path), "logs"]) == 0
