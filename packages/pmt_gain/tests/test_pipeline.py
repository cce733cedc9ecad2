"""test_pipeline.py

End-to-end per-channel pipeline: selection -> gate -> transform -> fit ->
report, plus channel isolation and output files.
"""
from __future__ import annotations

import json
import logging

import pytest

from conftest import format_table, power_law_measurements
from pmt_gain.analysis.report import PLACEHOLDER_ROW
from pmt_gain.api.errors import InputTableError
from pmt_gain.api.types import ChannelDataset, FitStatus, OutcomeKind
from pmt_gain.core import pipeline
from pmt_gain.core.config import make_config
from pmt_gain.core.pipeline import analyze_channel, analyze_measurements, build_report, run_calibration


class TestAnalyzeChannel:
    def test_supported_channel_is_fitted(self):
        ds = ChannelDataset(channel_id=3, measurements=power_law_measurements(3))
        outcome = analyze_channel(ds)
        assert outcome.kind == OutcomeKind.fitted
        assert outcome.fitted
        assert outcome.n_points == 6
        assert outcome.fit.exponent == pytest.approx(7.0, rel=1e-2)
        assert outcome.fit.physical_amplitude == pytest.approx(2e-8, rel=1e-2)
        assert outcome.data is not None and len(outcome.data) == 6

    def test_two_point_channel_is_skipped_with_diagnostic(self, caplog):
        ds = ChannelDataset(channel_id=4, measurements=power_law_measurements(4, (1000.0, 1500.0)))
        with caplog.at_level(logging.WARNING):
            outcome = analyze_channel(ds)
        assert outcome.kind == OutcomeKind.skipped
        assert outcome.fit is None
        assert outcome.n_points == 2
        assert "PMT 4" in caplog.text
        assert "SKIPPING" in caplog.text

    def test_degenerate_fit_is_flagged(self, caplog):
        cfg = make_config({"voltage_uncertainty": 0.0})
        ds = ChannelDataset(channel_id=1, measurements=power_law_measurements(1, rel_err=0.0))
        with caplog.at_level(logging.WARNING):
            outcome = analyze_channel(ds, cfg)
        assert outcome.kind == OutcomeKind.fitted
        assert outcome.fit.status == FitStatus.degenerate
        assert "degenerate" in caplog.text


class TestAnalyzeMeasurements:
    def test_outcomes_in_channel_order(self, mixed_rows):
        outcomes = analyze_measurements(mixed_rows)
        assert [o.channel_id for o in outcomes] == list(range(1, 11))
        skipped = [o.channel_id for o in outcomes if o.kind == OutcomeKind.skipped]
        assert skipped == [2, 7]
        for o in outcomes:
            if o.fitted:
                assert o.fit.ndf == o.n_points - 2
                assert o.fit.exponent == pytest.approx(7.0, rel=0.1)

    def test_failure_in_one_channel_does_not_stop_others(self, mixed_rows, monkeypatch):
        real_fit = pipeline.fit_power_law

        def flaky_fit(data, config):
            if data.channel_id == 5:
                raise RuntimeError("boom")
            return real_fit(data, config)

        monkeypatch.setattr(pipeline, "fit_power_law", flaky_fit)
        outcomes = analyze_measurements(mixed_rows)
        by_id = {o.channel_id: o for o in outcomes}
        assert by_id[5].kind == OutcomeKind.error
        assert "boom" in by_id[5].message
        assert by_id[6].fitted
        assert by_id[10].fitted

    def test_empty_table_skips_every_channel(self):
        outcomes = analyze_measurements([])
        assert all(o.kind == OutcomeKind.skipped for o in outcomes)
        rows = build_report(outcomes).rows()
        assert rows == [PLACEHOLDER_ROW] * 30


class TestReportCadence:
    def test_padded_report_has_three_rows_per_channel(self, mixed_rows):
        rows = build_report(analyze_measurements(mixed_rows)).rows()
        assert len(rows) == 30
        # row position = channel: data rows at 3*cid - 1 (1-based)
        for cid in range(1, 11):
            third = rows[3 * cid - 1]
            if cid in (2, 7):
                assert third == PLACEHOLDER_ROW
            else:
                assert third != PLACEHOLDER_ROW
                assert len(third.split(",")) == 7

    def test_legacy_report_omits_third_row_for_skips(self, mixed_rows):
        cfg = make_config({"pad_skipped_channels": False})
        rows = build_report(analyze_measurements(mixed_rows, cfg), cfg).rows()
        assert len(rows) == 28
        assert rows[3:5] == [PLACEHOLDER_ROW] * 2
        assert rows[5] == PLACEHOLDER_ROW


class TestRunCalibration:
    def test_writes_report_and_archive(self, mixed_rows, write_table, tmp_path):
        src = write_table(mixed_rows, name="CHIMNEY")
        out = tmp_path / "out"
        result = run_calibration("CHIMNEY", input_path=src, out_dir=out, make_plots=False)

        report = out / "CHIMNEY_gainvsvoltage.txt"
        archive = out / "CHIMNEY_gainvsvoltage.json"
        assert result.files["report"] == str(report)
        assert report.read_text().splitlines() == result.report.rows()
        assert json.loads(archive.read_text())["name"] == "CHIMNEY"
        assert result.skipped == [2, 7]
        assert len(result.fitted) == 8

    def test_default_input_is_name_dot_txt(self, mixed_rows, write_table, tmp_path, monkeypatch):
        write_table(mixed_rows, name="CH7")
        monkeypatch.chdir(tmp_path)
        result = run_calibration("CH7", out_dir=tmp_path, make_plots=False, make_archive=False)
        assert "archive" not in result.files
        assert (tmp_path / "CH7_gainvsvoltage.txt").exists()

    def test_writes_one_figure_per_fitted_channel(self, mixed_rows, write_table, tmp_path):
        src = write_table(mixed_rows, name="FIG")
        result = run_calibration("FIG", input_path=src, out_dir=tmp_path, make_archive=False)
        figures = sorted(k for k in result.files if k.startswith("figure_"))
        assert len(figures) == 8
        assert (tmp_path / "FIG_1_gainvsvoltage.pdf").exists()
        assert not (tmp_path / "FIG_2_gainvsvoltage.pdf").exists()

    def test_bad_input_is_fatal_and_writes_nothing(self, write_table, tmp_path):
        src = write_table("1 1000 0.03 0.001\n1 bad 0.1 0.002\n", name="BAD")
        out = tmp_path / "out"
        with pytest.raises(InputTableError):
            run_calibration("BAD", input_path=src, out_dir=out)
        assert not out.exists()

    def test_missing_input_is_fatal(self, tmp_path):
        with pytest.raises(InputTableError):
            run_calibration("GONE", input_path=tmp_path / "GONE.txt", out_dir=tmp_path)
        assert list(tmp_path.iterdir()) == []


def test_noiseless_channel_three(write_table, tmp_path):
    """Channel 3: six noiseless points on 2e-8 * V**7 with 1% errors."""
    src = write_table(power_law_measurements(3), name="EX")
    result = run_calibration("EX", input_path=src, out_dir=tmp_path, make_plots=False)
    fit = result.outcomes[2].fit
    assert fit.exponent == pytest.approx(7.0, rel=1e-2)
    assert fit.physical_amplitude == pytest.approx(2e-8, rel=1e-2)
    assert fit.reduced_chi_square < 1e-6
    assert sum(1 for o in result.outcomes if o.fitted) == 1


def test_overflowing_degenerate_channel_does_not_abort_run(write_table, tmp_path):
    """All points of PMT 1 sit at one sub-volt voltage; PMT 2 is clean."""
    rows = "1 0.5 0.3 0.003\n1 0.5 0.2 0.002\n1 0.5 0.1 0.001\n"
    rows += format_table(power_law_measurements(2, (1200.0, 1600.0, 2000.0)))
    src = write_table(rows, name="OVF")
    cfg = make_config({"n_channels": 2})
    result = run_calibration("OVF", input_path=src, out_dir=tmp_path, config=cfg)

    bad, good = result.outcomes
    assert bad.kind == OutcomeKind.fitted
    assert bad.fit.status == FitStatus.degenerate
    assert good.fit.status == FitStatus.ok
    assert (tmp_path / "OVF_gainvsvoltage.json").exists()
    assert (tmp_path / "OVF_2_gainvsvoltage.pdf").exists()
    assert not (tmp_path / "OVF_1_gainvsvoltage.pdf").exists()
    rows_out = (tmp_path / "OVF_gainvsvoltage.txt").read_text().splitlines()
    assert len(rows_out) == 6
    assert rows_out[5] != PLACEHOLDER_ROW
