"""
Command protocol tests: parsing, validation, serialization
"""
import json
import pytest
from pydantic import ValidationError
import sys
import os

# Make the project root importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from agentbrowser.protocol import (
    COMMAND_TYPES,
    ClickCommand,
    LaunchCommand,
    NavigateCommand,
    Response,
    build_command,
    error_response,
    parse_command,
    parse_response,
    serialize_command,
    serialize_response,
    success_response,
)


def parse(payload):
    return parse_command(json.dumps(payload))


class TestParseCommand:
    """Two-phase parsing of raw request text"""

    def test_valid_navigate(self):
        result = parse({"id": "1", "action": "navigate", "url": "https://example.com"})

        assert result.success
        assert isinstance(result.command, NavigateCommand)
        assert result.command.url == "https://example.com"
        assert result.id == "1"

    def test_invalid_json(self):
        result = parse_command("{not json")

        assert not result.success
        assert result.error == "Invalid JSON"
        assert result.id is None

    def test_missing_field_names_field_and_keeps_id(self):
        result = parse({"id": "7", "action": "navigate"})

        assert not result.success
        assert result.error.startswith("Validation error")
        assert "url" in result.error
        assert result.id == "7"

    def test_unknown_action(self):
        result = parse({"id": "x", "action": "teleport"})

        assert not result.success
        assert result.id == "x"

    def test_id_recovered_even_when_invalid_type(self):
        result = parse({"id": 42, "action": "getUrl"})

        assert not result.success
        assert result.id == "42"

    def test_non_object_payload(self):
        result = parse_command("[1, 2, 3]")

        assert not result.success
        assert result.id is None

    def test_relative_url_rejected(self):
        result = parse({"id": "1", "action": "navigate", "url": "example.com"})

        assert not result.success
        assert "url" in result.error

    def test_about_blank_accepted(self):
        result = parse({"id": "1", "action": "navigate", "url": "about:blank"})

        assert result.success

    def test_enum_restricted(self):
        result = parse({"id": "1", "action": "navigate", "url": "https://a.b", "waitUntil": "whenever"})

        assert not result.success
        assert "waitUntil" in result.error

    def test_camel_case_fields(self):
        result = parse({"id": "1", "action": "click", "selector": "#go", "clickCount": 2, "noWaitAfter": True})

        assert result.success
        assert result.command.click_count == 2
        assert result.command.no_wait_after is True


class TestValidationBounds:
    """No silent coercion and numeric bounds"""

    @pytest.mark.parametrize("quality", [0, 55, 100])
    def test_quality_in_range(self, quality):
        assert parse({"id": "1", "action": "screenshot", "quality": quality}).success

    @pytest.mark.parametrize("quality", [-1, 101])
    def test_quality_out_of_range(self, quality):
        result = parse({"id": "1", "action": "screenshot", "quality": quality})

        assert not result.success
        assert "quality" in result.error

    def test_negative_coordinate_rejected(self):
        result = parse({"id": "1", "action": "click", "selector": "a", "position": {"x": -1, "y": 3}})

        assert not result.success
        assert "position" in result.error

    def test_string_not_coerced_to_number(self):
        result = parse({"id": "1", "action": "wait", "timeout": "100"})

        assert not result.success

    def test_string_not_coerced_to_bool(self):
        result = parse({"id": "1", "action": "launch", "headless": "false"})

        assert not result.success

    def test_float_not_accepted_for_int(self):
        result = parse({"id": "1", "action": "snapshot", "depth": 1.5})

        assert not result.success

    def test_int_accepted_for_float(self):
        result = parse({"id": "1", "action": "wait", "timeout": 250})

        assert result.success
        assert result.command.timeout == 250

    def test_zero_wait_rejected(self):
        assert not parse({"id": "1", "action": "wait", "timeout": 0}).success

    def test_select_needs_exactly_one_choice(self):
        assert parse({"id": "1", "action": "select", "selector": "s", "value": "a"}).success
        assert not parse({"id": "1", "action": "select", "selector": "s"}).success
        assert not parse({"id": "1", "action": "select", "selector": "s", "value": "a", "label": "A"}).success

    def test_scroll_needs_a_target(self):
        assert parse({"id": "1", "action": "scroll", "direction": "down", "amount": 300}).success
        assert not parse({"id": "1", "action": "scroll", "direction": "down"}).success

    def test_geolocation_bounds(self):
        assert parse({"id": "1", "action": "setGeolocation", "latitude": 35.6, "longitude": 139.7}).success
        assert not parse({"id": "1", "action": "setGeolocation", "latitude": 91, "longitude": 0}).success

    def test_launch_defaults(self):
        result = parse({"id": "1", "action": "launch"})

        assert result.success
        assert isinstance(result.command, LaunchCommand)
        assert result.command.headless is True
        assert result.command.browser == "chromium"


class TestSerialization:
    """serialize/parse round trip"""

    @pytest.mark.parametrize("action,fields", [
        ("navigate", {"url": "https://example.com", "wait_until": "networkidle"}),
        ("click", {"selector": "@e3", "button": "right", "position": {"x": 1, "y": 2}, "modifiers": ["Shift"]}),
        ("launch", {"headless": False, "viewport": {"width": 800, "height": 600}, "browser": "firefox"}),
        ("snapshot", {"interactive": True, "depth": 3, "compact": True}),
        ("domTree", {"include_hidden": True}),
        ("select", {"selector": "#s", "index": [0, 2]}),
        ("setCookies", {"cookies": [{"name": "a", "value": "b", "url": "https://x.y", "http_only": True}]}),
        ("getConsole", {"type": "error", "clear": True}),
    ])
    def test_round_trip(self, action, fields):
        command = build_command(action, id="rt", **fields)

        result = parse_command(serialize_command(command))

        assert result.success
        assert result.command == command

    def test_wire_names_are_camel_case(self):
        command = build_command("click", id="1", selector="#a", click_count=2)

        data = json.loads(serialize_command(command))

        assert data == {"id": "1", "action": "click", "selector": "#a", "clickCount": 2}

    def test_commands_are_frozen(self):
        command = build_command("click", id="1", selector="#a")

        with pytest.raises(ValidationError):
            command.selector = "#b"

    def test_build_command_unknown_action(self):
        with pytest.raises(ValueError):
            build_command("teleport")

    def test_command_set(self):
        assert "domTree" in COMMAND_TYPES
        assert COMMAND_TYPES["click"] is ClickCommand
        for excluded in ("startStream", "agentRun", "startHar", "setTimezone"):
            assert excluded not in COMMAND_TYPES


class TestResponse:
    """Response envelopes"""

    def test_success_has_no_error(self):
        data = json.loads(serialize_response(success_response("1", {"url": "https://a.b"})))

        assert data == {"id": "1", "success": True, "result": {"url": "https://a.b"}}

    def test_error_has_no_result(self):
        data = json.loads(serialize_response(error_response("2", "boom")))

        assert data == {"id": "2", "success": False, "error": "boom"}

    def test_parse_response(self):
        response = parse_response('{"id": "3", "success": true, "result": {"count": 2}}')

        assert response == Response(id="3", success=True, result={"count": 2})

    def test_parse_response_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_response('{"success": true}')
