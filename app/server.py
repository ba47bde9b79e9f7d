import logging

from app.vars import SERVICE_NAME, OTLP_ENDPOINT, OTLP_HEADERS, CORS_ALLOW_ORIGINS
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .routes import router
from opentelemetry import trace

from prometheus_fastapi_instrumentator import Instrumentator
from prometheus_client import Info

logger = logging.getLogger("uvicorn.error")

app = FastAPI(title="Rewrite Proxy")
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)
instrumentator = Instrumentator()

instrumentator.instrument(app).expose(app)


try:
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

    _OTEL_AVAILABLE = True
except ImportError:  # pragma: no cover - tracing stays on the no-op API provider
    _OTEL_AVAILABLE = False


# Configure tracing if OpenTelemetry SDK dependencies are available
if _OTEL_AVAILABLE and OTLP_ENDPOINT:
    trace.set_tracer_provider(
        TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    )
    tracer_provider = trace.get_tracer_provider()
    otlp_exporter = OTLPSpanExporter(
        endpoint=OTLP_ENDPOINT,
        headers=OTLP_HEADERS or None,
    )
    tracer_provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

    FastAPIInstrumentor.instrument_app(app, excluded_urls="metrics")
    logger.info(f"Exporting traces to {OTLP_ENDPOINT}")

# Add app_name to the metrics
app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})

app.include_router(router)
