"""Langfuse integration for run observability."""

from contextlib import contextmanager
from typing import Any

from langfuse import Langfuse

from .config import Config
from .models import RunReport, Target, UnitResult


class TracingClient:
    """Langfuse tracing: each verifier pass is a trace, each checkout unit a span."""

    def __init__(self, config: Config):
        self.config = config
        self.enabled = config.langfuse.enabled
        self._client: Langfuse | None = None

        if self.enabled:
            self._client = Langfuse(
                public_key=config.langfuse.public_key,
                secret_key=config.langfuse.secret_key,
            )

    @contextmanager
    def run(self, target: Target):
        """Trace one pass over a target; yields None when tracing is off."""
        if not self.enabled or not self._client:
            yield None
            return

        trace = self._client.trace(
            name="price-check",
            input={"target": target.identity},
            metadata={"country": target.country},
        )
        try:
            yield trace
        except Exception as e:
            trace.update(output={"error": str(e)}, tags=["run-fatal"])
            raise

    def unit(self, trace: Any, result: UnitResult) -> None:
        """Record one visited checkout unit as a span of the run trace."""
        if trace is None:
            return

        findings = [f.message for f in result.findings + result.option_findings]
        trace.span(
            name=result.unit.key,
            input={
                "tab": result.tab_title,
                "card": result.product_name,
                "price": result.card_price,
            },
            output={
                "outcome": result.outcome.value,
                "surface": result.surface,
                "options": [o.price for o in result.options],
                "findings": findings,
            },
            level="ERROR" if findings else "DEFAULT",
        )

    def finish(self, trace: Any, report: RunReport) -> None:
        if trace is None:
            return
        trace.update(
            output={
                "passed": report.passed,
                "units": len(report.units),
                "findings": [str(f) for f in report.findings],
            },
            tags=["passed" if report.passed else "failed"],
        )

    def flush(self) -> None:
        """Flush pending events to Langfuse."""
        if self._client:
            self._client.flush()


# Global tracing instance (initialized by CLI)
_tracing: TracingClient | None = None


def init_tracing(config: Config) -> TracingClient:
    """Initialize global tracing client."""
    global _tracing
    _tracing = TracingClient(config)
    return _tracing


def get_tracing() -> TracingClient | None:
    """Get the global tracing client."""
    return _tracing
