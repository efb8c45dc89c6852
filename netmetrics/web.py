"""Flask application factory and HTTP routes."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx
from flask import Flask, Response, jsonify, request
from werkzeug.middleware.proxy_fix import ProxyFix

from netmetrics.engine import MeasurementAggregator, MeasurementError, utc_timestamp
from netmetrics.export import error_payload, report_to_dict
from netmetrics.models import MeasurementConfig
from netmetrics.system import system_cache

LOGGER = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET",
    "Access-Control-Allow-Headers": "Content-Type, Accept, Cache-Control",
}


def request_network_info() -> dict[str, str]:
    """Describe the current request as seen by the server."""
    protocol = request.environ.get("SERVER_PROTOCOL", "")
    return {
        "ip": request.remote_addr or "Unknown",
        "protocol": request.scheme,
        "httpVersion": protocol.split("/", 1)[-1] if protocol else "Unknown",
        "userAgent": request.user_agent.string,
    }


def create_web_app(
    config: MeasurementConfig,
    trust_proxy: bool = False,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Flask:
    app = Flask(__name__)
    app.config["MEASUREMENT_CONFIG"] = config

    if trust_proxy:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore

    # One host-stats cache per app, handed to every aggregator.
    host_stats = system_cache(config.system_cache_ttl) if config.include_system else None

    @app.after_request
    def add_cors_headers(response: Response) -> Response:
        for name, value in CORS_HEADERS.items():
            response.headers[name] = value
        return response

    @app.get("/")
    def index():
        return Response(
            "Server is running! Try /network-metrics for speed test.",
            mimetype="text/plain",
        )

    @app.get("/network-metrics")
    def network_metrics():
        aggregator = MeasurementAggregator(
            config,
            observed_ip=request.remote_addr,
            transport=transport,
            system_cache=host_stats,
            network=request_network_info(),
        )
        try:
            report = asyncio.run(aggregator.run())
        except MeasurementError as exc:
            LOGGER.exception("Network metrics test failed")
            return jsonify(error_payload(str(exc), utc_timestamp())), 500
        except Exception as exc:
            LOGGER.exception("Unexpected error during network metrics test")
            return jsonify(error_payload(str(exc) or type(exc).__name__, utc_timestamp())), 500

        LOGGER.info(
            "Measured %s: down %.2f Mbps / up %.2f Mbps / ping %.1f ms",
            request.remote_addr,
            report.download_mbps,
            report.upload_mbps,
            report.ping_ms,
        )
        return jsonify(report_to_dict(report))

    return app
