"""Tests for mdkcli.core.exceptions module."""

from __future__ import annotations

import pytest

from mdkcli.core.exceptions import (
    ConfigException,
    EngineError,
    FormatError,
    MDKException,
    NotFoundError,
    TransportError,
)


class TestMDKException:
    def test_create_with_message(self):
        exc = MDKException("Something went wrong")
        assert str(exc) == "Something went wrong"
        assert exc.message == "Something went wrong"
        assert exc.details == {}

    def test_to_dict_uses_class_name(self):
        exc = TransportError("down", relays=["wss://a"])
        d = exc.to_dict()
        assert d["error"] == "TransportError"
        assert d["message"] == "down"
        assert d["details"] == {"relays": ["wss://a"]}

    @pytest.mark.parametrize(
        "exc",
        [
            ConfigException("x"),
            TransportError("x"),
            FormatError("x"),
            EngineError("x"),
            NotFoundError("group", "abc"),
        ],
    )
    def test_subclasses_are_mdk_exceptions(self, exc):
        assert isinstance(exc, MDKException)


class TestSubclassDetails:
    def test_config_missing_vars(self):
        exc = ConfigException("no key", missing_vars=["MDK_KEY_FILE"])
        assert exc.missing_vars == ["MDK_KEY_FILE"]
        assert exc.details["missing_vars"] == ["MDK_KEY_FILE"]

    def test_format_error_event_id(self):
        exc = FormatError("bad", event_id="ab" * 32)
        assert exc.event_id == "ab" * 32
        assert exc.details == {"event_id": "ab" * 32}

    def test_engine_error_operation(self):
        exc = EngineError("nope", operation="process_message")
        assert exc.operation == "process_message"

    def test_engine_error_without_operation(self):
        assert EngineError("nope").details == {}

    def test_not_found_message(self):
        exc = NotFoundError("welcome", "e1")
        assert exc.message == "welcome not found: e1"
        assert exc.resource_type == "welcome"
        assert exc.resource_id == "e1"
