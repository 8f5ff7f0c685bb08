from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource


def setup_metrics(app_name: str) -> MeterProvider:
    """Configure OpenTelemetry metrics with a console reader."""

    resource = Resource.create({"service.name": app_name})

    # A CLI run is short-lived; the reader flushes on provider shutdown
    console_reader = PeriodicExportingMetricReader(ConsoleMetricExporter())

    provider = MeterProvider(resource=resource, metric_readers=[console_reader])

    metrics.set_meter_provider(provider)
    return provider
