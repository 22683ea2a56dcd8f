"""
Host adapter for opencode-otel.

The host delivers telemetry-relevant signals through several callbacks with
different signatures. OtelPlugin folds each into a ``{"type", "properties"}``
event and hands it to the translator, so the translator never depends on host
callback shapes. Every callback catches and logs its own failures: telemetry
must never break the host it observes.
"""

import atexit
import logging
import os
import signal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from opentelemetry.sdk.metrics.export import MetricReader

from opencode_otel.config import PluginSettings, load_config
from opencode_otel.errors import OtelPluginError
from opencode_otel.hooks import HookState, ToggleResult, create_hook_state, handle_event
from opencode_otel.log import configure_logging
from opencode_otel.telemetry import PLUGIN_NAME, PLUGIN_VERSION, LogSink, init_telemetry

logger = logging.getLogger(__name__)


class OtelPlugin:
    """Callbacks registered with the host.

    A plugin built without state is inert: every callback is a no-op. That is
    what the host gets when telemetry is not configured.
    """

    def __init__(self, state: Optional[HookState] = None):
        self.state = state
        self._shut_down = False

    @property
    def active(self) -> bool:
        return self.state is not None

    def dispatch(self, event: Mapping[str, Any], source: str = "event") -> Optional[ToggleResult]:
        """Translate one event, logging instead of raising on failure."""
        if self.state is None:
            return None
        try:
            return handle_event(self.state, event)
        except Exception as e:
            logger.error(f"Error in {source} hook (type={event.get('type')}): {e}")
            return None

    def event(self, event: Mapping[str, Any]) -> Optional[ToggleResult]:
        """Server-pushed events are forwarded as-is."""
        return self.dispatch(event)

    def chat_message(self, hook_input: Mapping[str, Any], hook_output: Mapping[str, Any]) -> None:
        self.dispatch(
            {
                "type": "chat.message",
                "properties": {
                    "sessionID": hook_input.get("sessionID"),
                    "agent": hook_input.get("agent"),
                    "model": hook_input.get("model"),
                    "parts": hook_output.get("parts") or [],
                },
            },
            "chat.message",
        )

    def tool_execute_before(
        self, hook_input: Mapping[str, Any], hook_output: Mapping[str, Any]
    ) -> None:
        self.dispatch(
            {
                "type": "tool.execute.before",
                "properties": {
                    "tool": hook_input.get("tool"),
                    "sessionID": hook_input.get("sessionID"),
                    "callID": hook_input.get("callID"),
                    "args": hook_output.get("args"),
                },
            },
            "tool.execute.before",
        )

    def tool_execute_after(
        self, hook_input: Mapping[str, Any], hook_output: Mapping[str, Any]
    ) -> None:
        self.dispatch(
            {
                "type": "tool.execute.after",
                "properties": {
                    "tool": hook_input.get("tool"),
                    "sessionID": hook_input.get("sessionID"),
                    "callID": hook_input.get("callID"),
                    "args": hook_input.get("args"),
                    "title": hook_output.get("title"),
                    "output": hook_output.get("output"),
                    "metadata": hook_output.get("metadata"),
                },
            },
            "tool.execute.after",
        )

    def command_execute_before(
        self, hook_input: Mapping[str, Any], hook_output: Optional[Mapping[str, Any]] = None
    ) -> Optional[ToggleResult]:
        return self.dispatch(
            {
                "type": "command.execute.before",
                "properties": {
                    "command": hook_input.get("command"),
                    "arguments": hook_input.get("arguments") or "",
                    "sessionID": hook_input.get("sessionID"),
                },
            },
            "command.execute.before",
        )

    def shutdown(self) -> None:
        """Flush and close the exporters once. Never raises."""
        if self.state is None or self._shut_down:
            return
        self._shut_down = True
        logger.info("Shutting down telemetry")
        self.state.telemetry.shutdown()


def install_sigterm_handler(plugin: OtelPlugin) -> None:
    """Flush telemetry on SIGTERM, then hand the signal to the previous handler.

    atexit hooks do not run when the default SIGTERM action kills the process,
    so the default action is re-raised only after the flush.
    """
    previous = signal.getsignal(signal.SIGTERM)

    def handle_signal(signum: int, frame: object) -> None:
        plugin.shutdown()
        if callable(previous):
            previous(signum, frame)
        elif previous != signal.SIG_IGN:
            signal.signal(signum, signal.SIG_DFL)
            os.kill(os.getpid(), signum)

    try:
        signal.signal(signal.SIGTERM, handle_signal)
    except ValueError as e:
        # Only the main thread may install signal handlers.
        logger.debug(f"SIGTERM handler not installed: {e}")


def create_plugin(
    settings: Optional[PluginSettings] = None,
    home: Optional[Path] = None,
    metric_readers: Optional[List[MetricReader]] = None,
    log_sink: Optional[LogSink] = None,
    register_shutdown: bool = True,
) -> OtelPlugin:
    """Load config, start the telemetry pipeline and return the host callbacks.

    Configuration problems never propagate: the host gets an inert plugin and
    the reason is logged.

    Args:
        settings: Environment settings (read from the process env when omitted)
        home: Home directory used to locate the default config file
        metric_readers: Metric readers overriding the configured exporter
        log_sink: Log sink overriding the configured exporter
        register_shutdown: Flush then shut down at exit and on SIGTERM
    """
    settings = settings or PluginSettings()
    configure_logging(settings.log_level)
    logger.info("Loading plugin")

    try:
        config = load_config(settings, home)
    except OtelPluginError as e:
        logger.error(f"Failed to load config: {e}")
        return OtelPlugin()

    if config is None:
        logger.warning(
            'No OTLP endpoint configured: add "endpoint" to ~/.config/opencode/otel.json '
            "or point OPENCODE_OTEL_CONFIG_PATH at a config file. Telemetry disabled."
        )
        return OtelPlugin()

    if config.metrics_exporter == "none" and config.logs_exporter == "none":
        logger.info("Both exporters set to 'none', telemetry disabled")
        return OtelPlugin()

    telemetry = init_telemetry(config, metric_readers=metric_readers, log_sink=log_sink)
    state = create_hook_state(config, telemetry)

    started: Dict[str, Any] = {
        "plugin.name": PLUGIN_NAME,
        "plugin.version": PLUGIN_VERSION,
        "otel.metrics_exporter": config.metrics_exporter,
        "otel.logs_exporter": config.logs_exporter,
        "otel.protocol": config.protocol,
        "otel.endpoint": config.endpoint,
    }
    telemetry.emit_event("plugin.started", started)

    plugin = OtelPlugin(state)
    if register_shutdown:
        atexit.register(plugin.shutdown)
        install_sigterm_handler(plugin)

    logger.info("Plugin started, hooks registered")
    return plugin
