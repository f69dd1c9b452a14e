"""Tests for source/config_header.py module.

Tests macro rewriting, static IP decomposition and file handling.
"""

import pytest

from firmware_codegen.codegen.schema import BuildRequest
from firmware_codegen.errors import ConfigTemplateError
from firmware_codegen.source.config_header import (
    apply_config,
    c_string,
    ip_to_octets,
    render_config,
    replace_all_defines,
    replace_define,
    uncomment_define,
)

TEMPLATE = """#ifndef CONFIG_H
#define CONFIG_H

#define BACKEND_HOST "old.example"
#define BACKEND_PORT 80
#define TOKEN "changeme"
#define DEVICE_NAME "device"

#ifdef ESP32
#define WIFI_SSID "ssid-a"
#define WIFI_PASSWORD "pass-a"
#else
#define WIFI_SSID "ssid-b"
#define WIFI_PASSWORD "pass-b"
#endif

// #define STATIC_IP
#define STATIC_IP_ADDRESS 192, 168, 0, 2
// #define USE_GO_BACKEND

#endif
"""


def make_request(**overrides) -> BuildRequest:
    values = {
        "device_ip": "10.0.0.5",
        "backend_host": "10.0.0.1",
        "backend_port": 8080,
        "wifi_ssid": "lab",
        "wifi_password": "pw",
        "token": "abc",
    }
    values.update(overrides)
    return BuildRequest(**values)


@pytest.fixture
def workspace(tmp_path):
    """Create a workspace with the template config header."""
    include = tmp_path / "include"
    include.mkdir()
    (include / "config.h").write_text(TEMPLATE, encoding="utf-8")
    return tmp_path


class TestIpToOctets:
    """Tests for ip_to_octets function."""

    def test_dotted_quad(self):
        """Should join the four parts with comma-space."""
        assert ip_to_octets("192.168.1.50") == "192, 168, 1, 50"

    def test_three_parts(self):
        """Should return empty string for fewer than four parts."""
        assert ip_to_octets("10.0.1") == ""

    def test_five_parts(self):
        """Should return empty string for more than four parts."""
        assert ip_to_octets("1.2.3.4.5") == ""

    def test_hostname(self):
        """Should return empty string for non-IP input."""
        assert ip_to_octets("device.local") == ""


class TestMacroHelpers:
    """Tests for low-level define rewriting helpers."""

    def test_c_string_escapes(self):
        """Should escape backslashes and double quotes."""
        assert c_string('a"b\\c') == '"a\\"b\\\\c"'

    def test_replace_define_first_only(self):
        """Should only rewrite the first definition."""
        content = '#define TOKEN "one"\n#define TOKEN "two"\n'
        result, count = replace_define(content, "TOKEN", '"new"')
        assert count == 1
        assert result == '#define TOKEN "new"\n#define TOKEN "two"\n'

    def test_replace_all_defines(self):
        """Should rewrite every definition."""
        content = '#define WIFI_SSID "a"\n#define WIFI_SSID "b"\n'
        result, count = replace_all_defines(content, "WIFI_SSID", '"x"')
        assert count == 2
        assert result.count('#define WIFI_SSID "x"') == 2

    def test_replace_does_not_match_prefix(self):
        """Should not rewrite macros that merely share a prefix."""
        content = '#define TOKEN_LENGTH 32\n'
        result, count = replace_define(content, "TOKEN", '"x"')
        assert count == 0
        assert result == content

    def test_uncomment_exact_name(self):
        """Should not uncomment macros with a longer name."""
        content = "// #define STATIC_IP_ADDRESS 1, 2, 3, 4\n// #define STATIC_IP\n"
        result, count = uncomment_define(content, "STATIC_IP")
        assert count == 1
        assert result == "// #define STATIC_IP_ADDRESS 1, 2, 3, 4\n#define STATIC_IP\n"

    def test_uncomment_keeps_indent(self):
        """Should keep leading whitespace."""
        result, _ = uncomment_define("    //#define USE_GO_BACKEND\n", "USE_GO_BACKEND")
        assert result == "    #define USE_GO_BACKEND\n"


class TestRenderConfig:
    """Tests for render_config function."""

    def test_full_scenario(self):
        """Should inject every value and enable static IP and backend."""
        content, applied, skipped = render_config(TEMPLATE, make_request())

        assert '#define BACKEND_HOST "10.0.0.1"' in content
        assert "#define BACKEND_PORT 8080" in content
        assert '#define TOKEN "abc"' in content
        assert "#define STATIC_IP_ADDRESS 10, 0, 0, 5" in content
        assert "\n#define STATIC_IP\n" in content
        assert "\n#define USE_GO_BACKEND\n" in content
        assert "STATIC_IP" in applied
        assert "USE_GO_BACKEND" in applied
        assert skipped == []

    def test_wifi_rewritten_everywhere(self):
        """Should rewrite both WiFi branches."""
        content, _, _ = render_config(TEMPLATE, make_request())
        assert content.count('#define WIFI_SSID "lab"') == 2
        assert content.count('#define WIFI_PASSWORD "pw"') == 2
        assert "ssid-a" not in content
        assert "pass-b" not in content

    def test_single_macros_first_only(self):
        """Should leave later duplicate definitions alone."""
        template = '#define BACKEND_HOST "a"\n#define BACKEND_HOST "b"\n'
        content, _, _ = render_config(template, make_request())
        assert content == '#define BACKEND_HOST "10.0.0.1"\n#define BACKEND_HOST "b"\n'

    def test_invalid_ip_leaves_static_ip(self):
        """Should not touch static IP macros for non-dotted-quad input."""
        content, applied, _ = render_config(TEMPLATE, make_request(device_ip="device.local"))
        assert "// #define STATIC_IP\n" in content
        assert "#define STATIC_IP_ADDRESS 192, 168, 0, 2" in content
        assert "STATIC_IP" not in applied
        # Backend selection is unconditional
        assert "\n#define USE_GO_BACKEND\n" in content

    def test_zero_port_skipped(self):
        """Should keep the template port when the request port is 0."""
        content, _, _ = render_config(TEMPLATE, make_request(backend_port=0))
        assert "#define BACKEND_PORT 80\n" in content

    def test_device_name(self):
        """Should rewrite DEVICE_NAME when given."""
        content, applied, _ = render_config(TEMPLATE, make_request(device_name="node-7"))
        assert '#define DEVICE_NAME "node-7"' in content
        assert "DEVICE_NAME" in applied

    def test_device_name_absent_keeps_template(self):
        """Should leave DEVICE_NAME alone when not requested."""
        content, _, _ = render_config(TEMPLATE, make_request())
        assert '#define DEVICE_NAME "device"' in content

    def test_missing_macro_is_skipped(self):
        """Should record macros the template does not define."""
        template = TEMPLATE.replace('#define DEVICE_NAME "device"\n', "")
        content, applied, skipped = render_config(template, make_request(device_name="x"))
        assert "DEVICE_NAME" in skipped
        assert "DEVICE_NAME" not in applied
        assert "DEVICE_NAME" not in content

    def test_quotes_escaped(self):
        """Should C-escape string values."""
        content, _, _ = render_config(TEMPLATE, make_request(wifi_password='p"w\\d'))
        assert '#define WIFI_PASSWORD "p\\"w\\\\d"' in content

    def test_idempotent(self):
        """Should produce identical output when applied twice."""
        request = make_request(device_name="node")
        once, _, _ = render_config(TEMPLATE, request)
        twice, _, _ = render_config(once, request)
        assert once == twice


class TestApplyConfig:
    """Tests for apply_config function."""

    def test_rewrites_file(self, workspace):
        """Should rewrite the header in place."""
        result = apply_config(workspace, make_request())

        assert result.changed is True
        assert result.config_path == workspace / "include" / "config.h"
        content = result.config_path.read_text(encoding="utf-8")
        assert '#define BACKEND_HOST "10.0.0.1"' in content

    def test_second_apply_is_noop(self, workspace, caplog):
        """Should report no change and warn on a second application."""
        request = make_request()
        apply_config(workspace, request)
        first = (workspace / "include" / "config.h").read_bytes()

        with caplog.at_level("WARNING"):
            result = apply_config(workspace, request)

        assert result.changed is False
        assert (workspace / "include" / "config.h").read_bytes() == first
        assert "No changes were made" in caplog.text

    def test_missing_header(self, tmp_path):
        """Should raise ConfigTemplateError when the header is missing."""
        with pytest.raises(ConfigTemplateError) as exc_info:
            apply_config(tmp_path, make_request())
        assert exc_info.value.code == "config_error"

    def test_crlf_preserved(self, tmp_path):
        """Should keep CRLF line endings."""
        include = tmp_path / "include"
        include.mkdir()
        header = include / "config.h"
        header.write_bytes(TEMPLATE.replace("\n", "\r\n").encode("utf-8"))

        apply_config(tmp_path, make_request())

        data = header.read_bytes()
        assert data.count(b"\n") == data.count(b"\r\n")
        assert b'#define BACKEND_HOST "10.0.0.1"\r\n' in data
        assert b"#define STATIC_IP_ADDRESS 10, 0, 0, 5\r\n" in data
        assert b"\r\n#define STATIC_IP\r\n" in data
        assert b"\r\n#define USE_GO_BACKEND\r\n" in data

    def test_custom_header_path(self, tmp_path):
        """Should honor a custom header location."""
        (tmp_path / "config.h").write_text(TEMPLATE, encoding="utf-8")
        result = apply_config(tmp_path, make_request(), config_header="config.h")
        assert result.changed is True
