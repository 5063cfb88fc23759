import importlib
import os

import pytest

from pylandice.errors import ErrorKind


def _load_main():
    mod = importlib.import_module("scripts.run_simulation")
    return mod.main


def test_main_runs_and_reports(capsys):
    merged = _load_main()()
    out = capsys.readouterr().out
    assert "--- Simulation Finished ---" in out
    assert "[Timers] calculate tendencies" in out
    assert isinstance(merged, ErrorKind)


def test_main_writes_plots(monkeypatch, tmp_path):
    pytest.importorskip("matplotlib")
    out_dir = tmp_path / "plots"
    monkeypatch.setenv("LI_PLOT_EVERY", "1")
    monkeypatch.setenv("LI_OUTPUT_DIR", str(out_dir))
    _load_main()()
    names = sorted(os.listdir(out_dir))
    assert names == ["thickness_rank000_step00001.png", "thickness_rank000_step00002.png"]


def test_main_exits_on_bad_config(monkeypatch):
    monkeypatch.setenv("LI_TENDENCY", "spectral")
    with pytest.raises(SystemExit) as info:
        _load_main()()
    assert info.value.code == 2
