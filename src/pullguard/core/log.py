"""Logger with composable output sinks, backed by logfire."""

from __future__ import annotations

import contextlib
from abc import abstractmethod
from pathlib import Path
from typing import Any

from opentelemetry.proto.logs.v1 import logs_pb2
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult
from pydantic import Field, PrivateAttr, model_validator

from pullguard.core.base import BaseConfig

_current_logger: Logger | None = None


class _LoggerProxy:
    """Forwards attribute access to the configured Logger.

    Before setup_logger() runs every call is a no-op, so library code
    (predictor, orchestrator) can log unconditionally.
    """

    def __getattr__(self, name):
        if _current_logger is None:
            if name == "span":
                return lambda *args, **kwargs: contextlib.nullcontext()

            def _noop(*args, **kwargs):  # noqa: ARG001
                pass
            return _noop
        return getattr(_current_logger, name)

    def __enter__(self):
        if _current_logger is None:
            return self
        return _current_logger.__enter__()

    def __exit__(self, *args):
        if _current_logger is None:
            return False
        return _current_logger.__exit__(*args)


logger = _LoggerProxy()


# Level names mapped to OpenTelemetry severity numbers; logfire has
# nothing below trace, so spew is kept only as an alias
LEVELS = {
    'spew': logs_pb2.SEVERITY_NUMBER_TRACE,
    'trace': logs_pb2.SEVERITY_NUMBER_TRACE,
    'debug': logs_pb2.SEVERITY_NUMBER_DEBUG,
    'info': logs_pb2.SEVERITY_NUMBER_INFO,
    'warn': logs_pb2.SEVERITY_NUMBER_WARN,
    'error': logs_pb2.SEVERITY_NUMBER_ERROR,
    'fatal': logs_pb2.SEVERITY_NUMBER_FATAL,
}


def level_name(level_num: int) -> str:
    """Return the most severe level name that level_num reaches."""
    for name in ('fatal', 'error', 'warn', 'info', 'debug', 'trace', 'spew'):
        if level_num >= LEVELS[name]:
            return name
    return "unknown"


class LevelFilteringExporter(SpanExporter):
    """Forwards only spans at or above a minimum level."""

    def __init__(self, exporter: SpanExporter, min_level: str | None):
        self._exporter = exporter
        self._min_severity = LEVELS.get(
            (min_level or "info").lower(), logs_pb2.SEVERITY_NUMBER_INFO
        )

    def export(self, spans: list[ReadableSpan]) -> SpanExportResult:
        filtered = [
            span for span in spans
            if (span.attributes or {}).get(
                'logfire.level_num', logs_pb2.SEVERITY_NUMBER_INFO
            ) >= self._min_severity
        ]
        if filtered:
            return self._exporter.export(filtered)
        return SpanExportResult.SUCCESS

    def shutdown(self) -> None:
        self._exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self._exporter.force_flush(timeout_millis)


class Sink(BaseConfig):
    """Base class for log output sinks."""

    enabled: bool = Field(default=True, description="Enable this sink")
    level: str | None = Field(
        default=None,
        description=(
            "Log level for this sink; inherits Logger.level when unset. "
            "Valid: spew, trace, debug, info, warn, error, fatal"
        ),
    )
    format_template: str | None = Field(
        default=None,
        description="Line template; None writes OpenTelemetry JSON",
    )

    _processor: Any = PrivateAttr(default=None)

    # Attributes already rendered by the template or internal to logfire
    _SKIP_KEYS = frozenset({
        'code.filepath', 'code.lineno', 'code.function',
        'logfire.msg', 'logfire.level_num', 'logfire.span_type',
        'logfire.msg_template', 'logfire.json_schema',
    })

    def _format_span(self, span) -> str:
        """Render a span with format_template plus custom attributes."""
        if not self.format_template:
            import os
            return span.to_json() + os.linesep

        from datetime import UTC, datetime

        attrs = span.attributes or {}
        data = {
            'timestamp': datetime.fromtimestamp(
                span.start_time / 1e9, tz=UTC
            ),
            'level': level_name(attrs.get(
                'logfire.level_num', logs_pb2.SEVERITY_NUMBER_INFO
            )),
            'message': attrs.get('logfire.msg', span.name),
            'location': (
                f"{attrs.get('code.filepath')}:{attrs.get('code.lineno')}"
                if attrs.get('code.filepath') else ""
            ),
            'function': attrs.get('code.function', ""),
        }
        try:
            formatted = self.format_template.format(**data)
        except KeyError as e:
            return f"ERROR: Invalid template field {e}\n"

        extra = {
            key: value for key, value in attrs.items()
            if key not in self._SKIP_KEYS
            and not key.startswith(('otel.', 'telemetry.', 'service.'))
        }
        if extra:
            rendered = ' '.join(
                f"{k}={v!r}" for k, v in sorted(extra.items())
            )
            formatted = f"{formatted} │ {rendered}"
        return formatted + '\n'

    @abstractmethod
    def create_processor(self, log_root: Path, repo_name: str):
        """Return an OpenTelemetry span processor, or None."""

    def close(self):
        if self._processor:
            with contextlib.suppress(Exception):
                self._processor.shutdown()


class ConsoleSink(Sink):
    """Console output through logfire's console exporter."""

    verbose: bool = Field(default=False, description="Show span details")
    colors: str = Field(
        default="auto", description="Color mode: auto, always, never"
    )

    def create_processor(self, log_root: Path, repo_name: str):
        return None


class FileSink(Sink):
    """Line-oriented log file per repository."""

    enabled: bool = Field(default=False, description="Enable file logging")
    path: str = Field(
        default="{log_root}/{repo_name}/pullguard.log",
        description="Log file path template",
    )
    format_template: str | None = Field(
        default="{timestamp:%Y-%m-%d %H:%M:%S} {level:<5} {message}",
    )

    _file: Any = PrivateAttr(default=None)

    def create_processor(self, log_root: Path, repo_name: str):
        from opentelemetry.sdk.trace.export import (
            BatchSpanProcessor,
            ConsoleSpanExporter,
        )

        log_path = Path(
            self.path.format(log_root=log_root, repo_name=repo_name)
        )
        log_path.parent.mkdir(parents=True, exist_ok=True)
        # Line buffered so a crash mid-rebase still leaves the trail
        self._file = open(log_path, "a", buffering=1, encoding="utf-8")  # noqa: SIM115

        exporter = ConsoleSpanExporter(
            out=self._file, formatter=self._format_span
        )
        return BatchSpanProcessor(LevelFilteringExporter(exporter, self.level))

    def close(self):
        super().close()
        if self._file and not self._file.closed:
            with contextlib.suppress(Exception):
                self._file.flush()
                self._file.close()


class OTLPSink(Sink):
    """OTLP telemetry export (SigNoz, Jaeger, ...)."""

    enabled: bool = Field(default=False, description="Enable OTLP export")
    endpoint: str = Field(
        default="http://localhost:4317", description="OTLP gRPC endpoint"
    )
    insecure: bool = Field(default=True, description="Disable TLS")
    headers: dict[str, str] = Field(default_factory=dict)

    def create_processor(self, log_root: Path, repo_name: str):
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        exporter = OTLPSpanExporter(
            endpoint=self.endpoint,
            insecure=self.insecure,
            headers=self.headers or None,
        )
        if self.level:
            exporter = LevelFilteringExporter(exporter, self.level)
        return BatchSpanProcessor(exporter)


class Logger(BaseConfig):
    """Logger with console, file and OTLP sinks.

    close() reaches every sink through the BaseCloseable cascade.
    """

    level: str = Field(default="info", description="Default sink level")
    console: ConsoleSink = Field(default_factory=ConsoleSink)
    file: FileSink = Field(default_factory=FileSink)
    otlp: OTLPSink = Field(default_factory=OTLPSink)

    @model_validator(mode='after')
    def _cascade_level_to_sinks(self) -> 'Logger':
        for sink in (self.console, self.file):
            if sink.level is None:
                sink.level = self.level
        return self

    def setup(self, log_root: Path, repo_name: str):
        """Create sink processors and configure logfire."""
        import logfire
        from logfire import ConsoleOptions

        for sink in (self.console, self.file, self.otlp):
            if sink.enabled:
                sink._processor = sink.create_processor(log_root, repo_name)

        processors = [
            sink._processor for sink in (self.file, self.otlp)
            if sink.enabled and sink._processor
        ]

        console = (
            ConsoleOptions(
                # logfire has no level below trace
                min_log_level=(
                    "trace" if self.console.level == "spew"
                    else self.console.level
                ),
                verbose=self.console.verbose,
                colors=self.console.colors,
                include_timestamps=True,
            )
            if self.console.enabled
            else False
        )

        logfire.configure(
            service_name=f"pullguard-{repo_name}",
            send_to_logfire=False,
            console=console,
            additional_span_processors=processors or None,
        )

    def info(self, msg: str, **kwargs):
        import logfire
        logfire.info(msg, **kwargs)

    def debug(self, msg: str, **kwargs):
        import logfire
        logfire.debug(msg, **kwargs)

    def trace(self, msg: str, **kwargs):
        import logfire
        logfire.trace(msg, **kwargs)

    def warn(self, msg: str, **kwargs):
        import logfire
        logfire.warn(msg, **kwargs)

    warning = warn

    def error(self, msg: str, **kwargs):
        import logfire
        logfire.error(msg, **kwargs)

    def span(self, msg: str, **kwargs):
        """Span context manager, e.g. ``with logger.span("predict"):``."""
        import logfire
        return logfire.span(msg, **kwargs)

    def log(self, level: str, msg: str, **kwargs):
        import logfire
        # logfire has no level below trace
        if level == "spew":
            level = "trace"
        logfire.log(level, msg, attributes=kwargs or None)


def setup_logger(
    log_root: Path,
    repo_name: str,
    level: str = "info",
    console: ConsoleSink | None = None,
    file: FileSink | None = None,
    otlp: OTLPSink | None = None,
) -> Logger:
    """Initialize the global logger singleton.

    Called by Config after loading; tests call it directly.
    """
    global _current_logger

    if _current_logger is not None:
        _current_logger.close()

    _current_logger = Logger(
        level=level,
        console=console or ConsoleSink(),
        file=file or FileSink(),
        otlp=otlp or OTLPSink(),
    )
    _current_logger.setup(log_root, repo_name)
    return _current_logger
