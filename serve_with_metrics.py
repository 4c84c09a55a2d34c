#!/usr/bin/env python3
import argparse
import logging

from sizerlib.config import DEFAULT_MAX_INCOMING_REQUESTS, DEFAULT_USER_AGENT, HandlerConfig
from sizerlib.handler import BatchHandler
from sizerlib.metrics import Metrics, StatsLogger
from sizerlib.net import HttpClient
from sizerlib.prometheus_exporter import PrometheusExporter
from sizerlib.server import make_server


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Accept POSTed batches of URLs, fetch them concurrently and report document sizes."
    )
    parser.add_argument("--host", default="127.0.0.1", help="Interface to listen on.")
    parser.add_argument("--port", type=int, default=8080, help="Port to listen on.")
    parser.add_argument(
        "--max-requests",
        type=int,
        default=DEFAULT_MAX_INCOMING_REQUESTS,
        help="Maximum number of batches processed at once; extra batches get 503.",
    )
    parser.add_argument("--timeout", type=float, default=15.0, help="HTTP read timeout in seconds for each fetch.")
    parser.add_argument("--user-agent", default=DEFAULT_USER_AGENT, help="User-Agent header to send.")
    parser.add_argument("--max-connections", type=int, default=16, help="Max connections per pool for HTTP client.")
    parser.add_argument("--metrics-interval", type=float, default=10.0, help="Seconds between perf logs (0 to disable).")
    parser.add_argument("--prometheus-port", type=int, default=8000, help="Port for Prometheus metrics endpoint (0 to disable).")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase logging verbosity.")
    return parser.parse_args()


def build_config(args: argparse.Namespace) -> HandlerConfig:
    return HandlerConfig(
        host=args.host,
        port=max(0, args.port),
        max_requests=max(0, args.max_requests),
        request_timeout=max(0.1, args.timeout),
        max_connections=max(1, args.max_connections),
        user_agent=args.user_agent,
        metrics_interval=max(0.0, args.metrics_interval),
        prometheus_port=max(0, args.prometheus_port),
    )


def main() -> None:
    args = parse_args()
    log_level = logging.WARNING
    if args.verbose == 1:
        log_level = logging.INFO
    elif args.verbose >= 2:
        log_level = logging.DEBUG
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(threadName)s %(message)s",
    )

    config = build_config(args)
    metrics = Metrics()
    client = HttpClient(config.user_agent, config.request_timeout, config.max_connections)
    handler = BatchHandler(http_client=client, max_requests=config.max_requests, metrics=metrics)
    server = make_server(handler, config.host, config.port)

    exporter = None
    if config.prometheus_port:
        exporter = PrometheusExporter(metrics, gate=handler.gate, port=config.prometheus_port)
        exporter.start()
        logging.info("Prometheus metrics available at http://0.0.0.0:%d/metrics", config.prometheus_port)

    stats = None
    if config.metrics_interval > 0:
        stats = StatsLogger(metrics, config.metrics_interval, logging.info, gate=handler.gate)
        stats.start()

    logging.info("Listening on %s (max %d concurrent batches)", server.url, config.max_requests)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
        if stats:
            stats.stop()
        if exporter:
            exporter.stop()


if __name__ == "__main__":
    main()
