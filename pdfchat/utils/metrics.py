"""Prometheus metrics for ingestion, model calls and chat tools."""

from prometheus_client import Counter, Histogram

# Model call metrics
model_call_latency_ms = Histogram(
    "model_call_latency_ms",
    "External model call latency in milliseconds",
    ["operation", "outcome"],
    buckets=[50, 100, 250, 500, 1000, 2000, 5000, 10000, 30000, 60000],
)

model_call_retries_total = Counter(
    "model_call_retries_total",
    "Total retried external model calls",
    ["operation"],
)

# Ingestion pipeline metrics
ingestion_runs_total = Counter(
    "ingestion_runs_total",
    "Total ingestion pipeline runs by final outcome",
    ["outcome"],
)

ingestion_stage_latency_ms = Histogram(
    "ingestion_stage_latency_ms",
    "Ingestion stage latency in milliseconds",
    ["stage"],
    buckets=[100, 500, 1000, 5000, 10000, 30000, 60000, 120000, 300000, 600000],
)

ingestion_groups_total = Counter(
    "ingestion_groups_total",
    "Extraction page groups by outcome",
    ["outcome"],
)

# Chat tool metrics
chat_tool_calls_total = Counter(
    "chat_tool_calls_total",
    "Retrieval tool calls made by the chat loop",
    ["tool", "outcome"],
)


class PrometheusIngestionMetrics:
    """Prometheus-based ingestion metrics implementation."""

    def record_stage(self, stage: str, latency_ms: float) -> None:
        """Record stage latency."""
        ingestion_stage_latency_ms.labels(stage=stage).observe(latency_ms)

    def record_group(self, outcome: str) -> None:
        """Count an extraction group outcome (stored, empty, failed)."""
        ingestion_groups_total.labels(outcome=outcome).inc()

    def record_run(self, outcome: str) -> None:
        """Count a finished pipeline run (ready, failed)."""
        ingestion_runs_total.labels(outcome=outcome).inc()

    def record_tool_call(self, tool: str, outcome: str) -> None:
        """Count a chat tool call outcome."""
        chat_tool_calls_total.labels(tool=tool, outcome=outcome).inc()
