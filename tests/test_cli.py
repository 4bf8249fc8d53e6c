from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import pytest

from trusteye.__main__ import main

REPO_ROOT = Path(__file__).resolve().parents[1]


def test_cli_runs_commands_in_order(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.delenv("TRUSTEYE_USE_LLM", raising=False)
    exit_code = main(
        [
            "--command",
            "Create a referral campaign for 5-star reviewers",
            "--command",
            "yes",
            "--command",
            "status",
            "--state-store-root",
            str(tmp_path / "store"),
        ]
    )
    output = capsys.readouterr().out
    assert exit_code == 0
    assert "**Campaign Created: Referral Campaign - " in output
    assert "**Content Generated!**" in output
    assert (tmp_path / "store" / "events.jsonl").is_file()


def test_cli_rejects_invalid_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRUSTEYE_MIN_BRAND_SCORE", "abc")
    assert main(["--command", "status"]) == 1


def test_module_entry_point_end_to_end(tmp_path: Path) -> None:
    env = os.environ.copy()
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(REPO_ROOT / "src"), env.get("PYTHONPATH")]))
    env["TRUSTEYE_STATE_STORE_ROOT"] = str(tmp_path / "store")
    env.pop("TRUSTEYE_USE_LLM", None)

    result = subprocess.run(
        [sys.executable, "-m", "trusteye", "--command", "create template", "--command", "help"],
        cwd=tmp_path,
        env=env,
        capture_output=True,
        text=True,
        check=False,
    )

    assert result.returncode == 0, result.stderr
    assert "What would you like to create?" in result.stdout
    assert "I can help you run a campaign end to end" in result.stdout
