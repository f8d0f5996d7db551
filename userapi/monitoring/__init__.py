"""
Monitoring & Observability package

Includes:
- paths: request path normalization and the monitoring exclusion set
- metrics: Prometheus request counter/histogram and application counters
- tracing: OpenTelemetry setup and trace-id correlation
- middleware: the per-request observability pipeline
"""
