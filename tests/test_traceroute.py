"""Tests for the mtr-backed traceroute capability."""

import json
import subprocess

import pytest

from routelens.errors import DiagnosticUnavailable, InvalidTarget
from routelens.traceroute import MtrTraceRunner, parse_mtr_report

MTR_OUTPUT = json.dumps(
    {
        "report": {
            "mtr": {"src": "probe-host", "dst": "example.com", "tests": 10},
            "hubs": [
                {"count": 1, "host": "10.0.0.1", "Loss%": 0.0, "Snt": 10, "Last": 1.2,
                 "Avg": 1.4, "Best": 1.0, "Wrst": 2.1, "StDev": 0.3, "ASN": "AS???"},
                {"count": 2, "host": "???", "Loss%": 100.0, "Snt": 10, "Last": 0.0,
                 "Avg": 0.0, "Best": 0.0, "Wrst": 0.0, "StDev": 0.0},
                {"count": 3, "host": "93.184.216.34", "Loss%": 10.0, "Snt": 10, "Last": 85.3,
                 "Avg": 86.0, "Best": 84.9, "Wrst": 90.2, "StDev": 1.5, "ASN": "AS15133"},
            ],
        }
    }
)


def completed(stdout="", stderr="", returncode=0):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def mtr_installed(monkeypatch):
    monkeypatch.setattr("routelens.traceroute.shutil.which", lambda name: f"/usr/bin/{name}")


class TestParseMtrReport:
    """Test parsing of mtr JSON output."""

    def test_hops_in_order(self):
        """Test hops are numbered and ordered as in the report."""
        trace = parse_mtr_report(MTR_OUTPUT, "example.com")

        assert [hop.hop for hop in trace.hops] == [1, 2, 3]
        assert [hop.host for hop in trace.hops] == ["10.0.0.1", "???", "93.184.216.34"]

    def test_hop_statistics(self):
        """Test per-hop loss and latency fields are mapped."""
        hop = parse_mtr_report(MTR_OUTPUT, "example.com").hops[2]

        assert hop.loss == 10.0
        assert hop.last_ms == 85.3
        assert hop.avg_ms == 86.0
        assert hop.best_ms == 84.9
        assert hop.worst_ms == 90.2
        assert hop.asn == "AS15133"

    def test_missing_asn_is_none(self):
        """Test hops without an ASN field carry None."""
        assert parse_mtr_report(MTR_OUTPUT, "example.com").hops[1].asn is None

    def test_legacy_capitalized_host_key(self):
        """Test older mtr releases that emit "Host" are understood."""
        output = json.dumps({"report": {"mtr": {}, "hubs": [{"Host": "10.1.1.1", "Avg": 2}]}})
        trace = parse_mtr_report(output, "example.com")

        assert trace.hops[0].host == "10.1.1.1"
        assert trace.hops[0].avg_ms == 2.0

    def test_destination_fallback(self):
        """Test the requested target is used when mtr omits dst."""
        output = json.dumps({"report": {"hubs": [{"host": "10.0.0.1"}]}})
        assert parse_mtr_report(output, "fallback.example").target == "fallback.example"

    @pytest.mark.parametrize(
        "output",
        ["", "not json", "[]", json.dumps({"report": {"hubs": []}}), json.dumps({"other": 1})],
    )
    def test_unparsable_output(self, output):
        """Test invalid or empty reports raise DiagnosticUnavailable."""
        with pytest.raises(DiagnosticUnavailable):
            parse_mtr_report(output, "example.com")


class TestMtrTraceRunner:
    """Test subprocess invocation of mtr."""

    def test_build_command_is_argument_list(self):
        """Test the target is passed as a single argument."""
        runner = MtrTraceRunner(cycles=3)
        cmd = runner.build_command("example.com")

        assert cmd[0] == "mtr"
        assert "--json" in cmd
        assert cmd[-1] == "example.com"
        assert cmd[cmd.index("-c") + 1] == "3"

    def test_trace_success(self, monkeypatch, mtr_installed):
        """Test a successful run is parsed into a TraceResult."""
        calls = []

        def fake_run(cmd, **kwargs):
            calls.append((cmd, kwargs))
            return completed(stdout=MTR_OUTPUT)

        monkeypatch.setattr(subprocess, "run", fake_run)

        trace = MtrTraceRunner(timeout=12.0).trace("example.com")

        assert len(trace.hops) == 3
        assert calls[0][1]["shell"] is False
        assert calls[0][1]["timeout"] == 12.0

    def test_missing_binary(self, monkeypatch):
        """Test a missing mtr binary raises DiagnosticUnavailable."""
        monkeypatch.setattr("routelens.traceroute.shutil.which", lambda name: None)

        with pytest.raises(DiagnosticUnavailable, match="not found"):
            MtrTraceRunner().trace("example.com")

    def test_non_zero_exit(self, monkeypatch, mtr_installed):
        """Test a failing mtr run raises DiagnosticUnavailable."""
        monkeypatch.setattr(
            subprocess, "run", lambda cmd, **kw: completed(stderr="mtr: Failure", returncode=1)
        )

        with pytest.raises(DiagnosticUnavailable, match="exited with 1"):
            MtrTraceRunner().trace("example.com")

    def test_timeout(self, monkeypatch, mtr_installed):
        """Test an mtr run exceeding its timeout raises DiagnosticUnavailable."""

        def slow_run(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(subprocess, "run", slow_run)

        with pytest.raises(DiagnosticUnavailable, match="timed out"):
            MtrTraceRunner(timeout=1.0).trace("example.com")

    def test_invalid_target_never_executed(self, monkeypatch, mtr_installed):
        """Test validation happens before any subprocess is built."""
        calls = []
        monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: calls.append(cmd))

        with pytest.raises(InvalidTarget):
            MtrTraceRunner().trace("example.com && reboot")
        assert calls == []

    def test_cycles_must_be_positive(self):
        """Test zero cycles is rejected."""
        with pytest.raises(ValueError):
            MtrTraceRunner(cycles=0)
