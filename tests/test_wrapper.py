from __future__ import annotations

import json
import sys

import pytest

from compilebench import wrapper
from compilebench.errors import ProtocolError
from compilebench.model import PassTime

MARKER = "compilebench-time-0011223344556677"


def pass_line(name: str, time: float, start: int | None = None, end: int | None = None) -> str:
    return "time: " + json.dumps({"pass": name, "time": time, "rss_start": start, "rss_end": end})


def test_single_marker_gives_seconds():
    stderr = f"   Compiling generic-maps v0.1.0\n\n{MARKER}:1250000\n    Finished\n"
    assert wrapper.parse_marker(stderr, MARKER) == pytest.approx(1.25)


def test_missing_marker_is_a_protocol_error():
    with pytest.raises(ProtocolError, match="found 0"):
        wrapper.parse_marker("   Compiling generic-maps v0.1.0\n", MARKER)


def test_two_markers_are_a_protocol_error():
    stderr = f"{MARKER}:1000\n{MARKER}:2000\n"
    with pytest.raises(ProtocolError, match="found 2"):
        wrapper.parse_marker(stderr, MARKER)


def test_other_sessions_markers_are_ignored():
    stderr = f"compilebench-time-ffff:1000\n{MARKER}:2000\n{MARKER}x:3000\n"
    assert wrapper.parse_marker(stderr, MARKER) == pytest.approx(0.002)


def test_pass_times_keep_only_the_last_compilation():
    stderr = "\n".join(
        [
            pass_line("parse_crate", 0.5),
            pass_line("total", 1.0),
            pass_line("parse_crate", 0.01, 100, 200),
            pass_line("typeck", 0.2, 200, 300),
            pass_line("total", 0.3, 100, 300),
            "note: some unrelated line",
        ]
    )
    passes = wrapper.parse_pass_times(stderr)
    assert [p.name for p in passes] == ["parse_crate", "typeck", "total"]
    assert passes[0] == PassTime("parse_crate", 0.01, 100, 200)


def test_repeated_passes_are_summed():
    stderr = "\n".join(
        [
            pass_line("codegen_module", 0.1, 500, 700),
            pass_line("codegen_module", 0.2, 400, 650),
            pass_line("codegen_module", 0.3, None, 900),
            pass_line("total", 0.7),
        ]
    )
    passes = wrapper.parse_pass_times(stderr)
    codegen = passes[0]
    assert codegen.time == pytest.approx(0.6)
    assert codegen.before_rss == 400
    assert codegen.after_rss == 900


def test_text_format_lines_are_skipped():
    stderr = "time:   0.001; rss:   25MB ->   26MB (   +1MB)  parse_crate\n" + pass_line("total", 0.1)
    assert [p.name for p in wrapper.parse_pass_times(stderr)] == ["total"]


def test_detail_flags_only_for_crate_compilations():
    version_query = wrapper.wrapped_command(["rustc", "-vV"], details=True)
    compile_cmd = wrapper.wrapped_command(["rustc", "--crate-name", "generic_maps", "src/main.rs"], details=True)
    plain = wrapper.wrapped_command(["rustc", "--crate-name", "generic_maps"], details=False)
    assert version_query == ["rustc", "-vV"]
    assert compile_cmd[-2:] == wrapper.DETAIL_FLAGS
    assert plain == ["rustc", "--crate-name", "generic_maps"]


def test_wrapper_mode_flag():
    assert wrapper.in_wrapper_mode({wrapper.WRAPPER_ENV: "1"})
    assert not wrapper.in_wrapper_mode({})


def test_run_wrapper_forwards_exit_code_and_reports_time(monkeypatch, capfd):
    monkeypatch.setenv(wrapper.MARKER_ENV, MARKER)
    monkeypatch.setenv(wrapper.WRAPPER_ENV, "1")
    code = "import os, sys; sys.stderr.write(os.environ['RUSTC_FORCE_RUSTC_VERSION']); sys.exit(3)"

    returncode = wrapper.run_wrapper(["compilebench", sys.executable, "-c", code])

    err = capfd.readouterr().err
    assert returncode == 3
    assert "compilebench" in err
    assert wrapper.parse_marker(err, MARKER) >= 0.0


def test_run_wrapper_without_marker_stays_silent(monkeypatch, capfd):
    monkeypatch.delenv(wrapper.MARKER_ENV, raising=False)
    returncode = wrapper.run_wrapper(["compilebench", sys.executable, "-c", "pass"])
    assert returncode == 0
    assert "compilebench-time" not in capfd.readouterr().err


def test_shim_is_executable(tmp_path):
    shim = wrapper.write_shim(tmp_path)
    text = shim.read_text(encoding="utf-8")
    assert "-m compilebench" in text
    if not sys.platform.startswith("win"):
        assert shim.stat().st_mode & 0o111
