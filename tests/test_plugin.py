"""
Tests for the host adapter: plugin creation and callback folding.
"""

import json
import logging
import signal
from unittest.mock import MagicMock, patch

import pytest
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from opencode_otel.config import PluginSettings
from opencode_otel.hooks import ToggleResult
from opencode_otel.plugin import OtelPlugin, create_plugin, install_sigterm_handler

from tests.harness import RecordingLogSink


@pytest.fixture(autouse=True)
def fixed_user_id(monkeypatch):
    """Keep tests away from the real ~/.claude.json."""
    monkeypatch.setattr("opencode_otel.hooks.get_user_id", lambda: "plugin-user")


@pytest.fixture
def config_file(tmp_path):
    def _write(data):
        path = tmp_path / "otel.json"
        path.write_text(json.dumps(data) if not isinstance(data, str) else data)
        return PluginSettings(opencode_otel_config_path=str(path), log_level="DEBUG")

    return _write


@pytest.fixture
def sink():
    return RecordingLogSink()


@pytest.fixture
def plugin_for(config_file, sink, tmp_path):
    def _create(data):
        return create_plugin(
            settings=config_file(data),
            home=tmp_path / "home",
            metric_readers=[InMemoryMetricReader()],
            log_sink=sink,
            register_shutdown=False,
        )

    return _create


class TestCreatePlugin:
    """Tests for create_plugin startup paths."""

    def test_no_endpoint_gives_inert_plugin(self, plugin_for, sink, caplog):
        with caplog.at_level(logging.WARNING):
            plugin = plugin_for({"metricsExporter": "console"})

        assert plugin.active is False
        assert "No OTLP endpoint configured" in caplog.text
        assert sink.records == []

    def test_missing_file_gives_inert_plugin(self, tmp_path, sink):
        settings = PluginSettings(opencode_otel_config_path=str(tmp_path / "missing.json"))
        plugin = create_plugin(
            settings=settings, home=tmp_path / "home", log_sink=sink, register_shutdown=False
        )
        assert plugin.active is False

    def test_invalid_json_gives_inert_plugin(self, plugin_for, caplog):
        with caplog.at_level(logging.ERROR):
            plugin = plugin_for("{nope")

        assert plugin.active is False
        assert "Failed to load config" in caplog.text

    def test_invalid_fields_give_inert_plugin(self, plugin_for, caplog):
        with caplog.at_level(logging.ERROR):
            plugin = plugin_for({"endpoint": "http://c:4317", "protocol": "smoke-signals"})

        assert plugin.active is False
        assert "protocol" in caplog.text

    def test_both_exporters_none(self, plugin_for, sink):
        plugin = plugin_for(
            {"endpoint": "http://c:4317", "metricsExporter": "none", "logsExporter": "none"}
        )
        assert plugin.active is False
        assert sink.records == []

    def test_started_event(self, plugin_for, sink):
        """Test that startup emits plugin.started with the exporter settings."""
        plugin = plugin_for({"endpoint": "http://collector:4318", "protocol": "http/protobuf"})

        assert plugin.active is True
        assert len(sink.records) == 1
        record = sink.records[0]
        assert record.body == "opencode.plugin.started"
        assert record.attributes == {
            "event.name": "plugin.started",
            "plugin.name": "opencode-otel",
            "plugin.version": "0.1.0",
            "otel.metrics_exporter": "otlp",
            "otel.logs_exporter": "otlp",
            "otel.protocol": "http/protobuf",
            "otel.endpoint": "http://collector:4318",
        }

    def test_registers_atexit_shutdown(self, config_file, sink, tmp_path):
        with patch("opencode_otel.plugin.atexit.register") as register, patch(
            "opencode_otel.plugin.install_sigterm_handler"
        ) as install:
            plugin = create_plugin(
                settings=config_file({"endpoint": "http://c:4317"}),
                home=tmp_path / "home",
                metric_readers=[InMemoryMetricReader()],
                log_sink=sink,
            )
        register.assert_called_once_with(plugin.shutdown)
        install.assert_called_once_with(plugin)

    def test_uses_fixed_user_id(self, plugin_for, sink):
        plugin = plugin_for({"endpoint": "http://c:4317"})
        plugin.chat_message({"sessionID": "s1"}, {"parts": []})
        assert sink.records[-1].attributes["user.id"] == "plugin-user"


class TestCallbacks:
    """Tests for folding host callbacks into translator events."""

    @pytest.fixture
    def plugin(self, plugin_for):
        return plugin_for(
            {"endpoint": "http://c:4317", "logUserPrompts": True, "logToolDetails": True}
        )

    def test_chat_message(self, plugin, sink):
        plugin.chat_message(
            {"sessionID": "s1", "agent": "build", "model": {"providerID": "p", "modelID": "m"}},
            {"parts": [{"type": "text", "text": "Hello"}]},
        )

        attrs = sink.records[-1].attributes
        assert attrs["event.name"] == "user_prompt"
        assert attrs["prompt"] == "Hello"
        assert attrs["agent"] == "build"
        assert attrs["model.id"] == "m"
        assert attrs["session.id"] == "s1"

    def test_tool_execute_round_trip(self, plugin, sink):
        plugin.tool_execute_before(
            {"tool": "bash", "sessionID": "s1", "callID": "c1"}, {"args": {"command": "ls"}}
        )
        plugin.tool_execute_after(
            {"tool": "bash", "sessionID": "s1", "callID": "c1", "args": {"command": "ls"}},
            {"title": "ls", "output": "a.py", "metadata": {}},
        )

        attrs = sink.records[-1].attributes
        assert attrs["event.name"] == "tool_result"
        assert attrs["tool_name"] == "bash"
        assert json.loads(attrs["tool_args"]) == {"command": "ls"}
        assert attrs["tool_result_size_bytes"] == 4
        assert "c1" not in plugin.state.tool_calls

    def test_command_toggle(self, plugin, sink):
        result = plugin.command_execute_before({"command": "otel", "arguments": "off"})

        assert result == ToggleResult(enabled=False)
        assert plugin.state.enabled is False
        assert sink.records[-1].attributes["event.name"] == "telemetry.toggled"

        plugin.chat_message({"sessionID": "s1"}, {"parts": []})
        assert sink.records[-1].attributes["event.name"] == "telemetry.toggled"

    def test_command_without_arguments(self, plugin):
        result = plugin.command_execute_before({"command": "otel"}, {})
        assert result.enabled is False

    def test_event_forwarded(self, plugin, sink):
        plugin.event({"type": "session.created", "properties": {"info": {"id": "s1", "title": "T"}}})
        assert sink.records[-1].attributes["event.name"] == "session.created"

    def test_handler_errors_are_logged_not_raised(self, plugin, caplog):
        """Test that a failing translator never propagates into the host."""
        with patch("opencode_otel.plugin.handle_event", side_effect=RuntimeError("boom")):
            with caplog.at_level(logging.ERROR):
                result = plugin.event({"type": "session.created", "properties": {}})

        assert result is None
        assert "boom" in caplog.text
        assert "session.created" in caplog.text


class TestInertPlugin:
    def test_callbacks_are_noops(self):
        plugin = OtelPlugin()

        assert plugin.event({"type": "session.created", "properties": {"id": "s1"}}) is None
        plugin.chat_message({}, {"parts": []})
        plugin.tool_execute_before({}, {})
        plugin.tool_execute_after({}, {})
        assert plugin.command_execute_before({"command": "otel"}) is None
        plugin.shutdown()


class TestShutdown:
    def test_shutdown_runs_once(self):
        state = MagicMock()
        plugin = OtelPlugin(state)

        plugin.shutdown()
        plugin.shutdown()

        state.telemetry.shutdown.assert_called_once()


class TestSigtermHandler:
    """Tests for the SIGTERM flush-then-chain handler."""

    def install(self, previous):
        plugin = OtelPlugin(MagicMock())
        with patch("opencode_otel.plugin.signal.getsignal", return_value=previous), patch(
            "opencode_otel.plugin.signal.signal"
        ) as set_signal:
            install_sigterm_handler(plugin)
        signum, handler = set_signal.call_args[0]
        assert signum == signal.SIGTERM
        return plugin, handler

    def test_chains_previous_handler(self):
        """Test that telemetry is flushed before the host's own handler runs."""
        calls = []
        plugin, handler = self.install(lambda signum, frame: calls.append(signum))
        plugin.state.telemetry.shutdown.side_effect = lambda: calls.append("flush")

        handler(signal.SIGTERM, None)

        assert calls == ["flush", signal.SIGTERM]

    def test_default_action_reraised_after_flush(self):
        plugin, handler = self.install(signal.SIG_DFL)

        with patch("opencode_otel.plugin.signal.signal") as set_signal, patch(
            "opencode_otel.plugin.os.kill"
        ) as kill:
            handler(signal.SIGTERM, None)

        plugin.state.telemetry.shutdown.assert_called_once()
        set_signal.assert_called_once_with(signal.SIGTERM, signal.SIG_DFL)
        kill.assert_called_once()
        assert kill.call_args[0][1] == signal.SIGTERM

    def test_ignored_signal_stays_ignored(self):
        plugin, handler = self.install(signal.SIG_IGN)

        with patch("opencode_otel.plugin.os.kill") as kill:
            handler(signal.SIGTERM, None)

        plugin.state.telemetry.shutdown.assert_called_once()
        kill.assert_not_called()

    def test_outside_main_thread_is_tolerated(self):
        plugin = OtelPlugin(MagicMock())
        with patch(
            "opencode_otel.plugin.signal.signal", side_effect=ValueError("main thread only")
        ):
            install_sigterm_handler(plugin)
