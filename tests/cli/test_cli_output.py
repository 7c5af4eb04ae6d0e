"""Tests for CLI output envelopes."""

from __future__ import annotations

import json
from pathlib import Path

from mdkcli.cli.output import output_error, output_result, output_stream


def test_output_result(capsys):
    output_result({"count": 2, "path": Path("/tmp/x")})

    data = json.loads(capsys.readouterr().out)
    assert data == {"success": True, "data": {"count": 2, "path": "/tmp/x"}, "error": None}


def test_output_error(capsys):
    output_error("No identity found")

    data = json.loads(capsys.readouterr().out)
    assert data == {"success": False, "data": None, "error": "No identity found"}


def test_output_stream_is_one_compact_line(capsys):
    output_stream({"content": "hi", "created_at": 1})
    output_stream({"content": "there", "created_at": 2})

    lines = capsys.readouterr().out.splitlines()
    assert lines == ['{"content":"hi","created_at":1}', '{"content":"there","created_at":2}']
