#!/usr/bin/env python3
import io
import json
import logging
import os
import sys
import threading
import time
import argparse
from http.server import HTTPServer, BaseHTTPRequestHandler
from typing import Dict, Any, Optional

from .accumulator import LineProtocolAccumulator
from .cli import add_connection_args, config_from_args, setup_logging
from .config import LotusConfig
from .core import Collector, COLLECTOR_NAME, COLLECTOR_VERSION
from .types import ConfigurationError, ConversionError, CycleResult

log = logging.getLogger("lotus-metrics")


class CollectorDaemon:
    """Polls on a schedule and serves the latest cycle over HTTP.

    Endpoints: /metrics (line protocol), /snapshot (JSON), /healthz.
    """

    def __init__(self, collector: Collector, config: Dict[str, Any]):
        self.collector = collector
        self.config = config
        self.latest_results: Dict[str, Any] = {}
        self.latest_lines = ""
        self.lock = threading.Lock()
        self.running = False
        self.stop_event = threading.Event()
        self.worker_thread: Optional[threading.Thread] = None
        self.httpd: Optional[HTTPServer] = None
        self.output_file = config.get('output_file')

        # Ensure output directory exists
        if self.output_file:
            output_dir = os.path.dirname(self.output_file)
            if output_dir:
                os.makedirs(output_dir, exist_ok=True)

    def run_collectors(self) -> Dict[str, Any]:
        """Run one cycle and store its results."""
        buf = io.StringIO()
        try:
            result = self.collector.gather(LineProtocolAccumulator(buf))
        except ConversionError as e:
            # corrupt balance data: report the cycle as failed, keep polling
            log.critical(f"Cycle failed: {e}")
            result = CycleResult.create(
                collector_name=COLLECTOR_NAME,
                collector_version=COLLECTOR_VERSION,
                errors=[str(e)],
                failed=True,
            )
            buf = io.StringIO()

        data = result.to_dict()
        with self.lock:
            self.latest_results = data
            self.latest_lines = buf.getvalue()

            if self.output_file:
                try:
                    with open(self.output_file, 'w') as f:
                        json.dump(data, f, indent=2)
                    log.debug(f"Wrote collected data to {self.output_file}")
                except OSError as e:
                    log.error(f"Failed to write to output file {self.output_file}: {e}")

        return data

    def _worker_loop(self):
        """Background worker that runs cycles on a schedule."""
        interval = self.config.get('interval', 60)
        log.debug(f"Starting worker loop with {interval}s interval")

        # start() has already run the first cycle
        if self.stop_event.wait(interval):
            return

        while self.running:
            start_time = time.time()
            try:
                log.debug("Running scheduled collection")
                self.run_collectors()
            except Exception:
                log.exception("Error in collector worker")

            sleep_time = max(0, interval - (time.time() - start_time))
            if sleep_time > 0:
                log.debug(f"Sleeping for {sleep_time:.1f} seconds until next collection")
            if self.stop_event.wait(sleep_time):
                break

    def start(self):
        """Start the polling thread and the HTTP server."""
        if self.running:
            log.warning("Daemon is already running")
            return

        self.running = True
        self.stop_event.clear()

        log.info("Running initial collection")
        self.run_collectors()

        self.worker_thread = threading.Thread(
            target=self._worker_loop,
            name="collector-worker",
            daemon=True
        )
        self.worker_thread.start()

        addr = (self.config.get('host', ''), self.config.get('port', 9273))
        httpd = HTTPServer(addr, self._make_handler())
        self.httpd = httpd

        log.info(f"Starting HTTP server on {addr[0]}:{addr[1]}")
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            log.info("Shutting down...")
        finally:
            self.stop()

    def stop(self):
        """Stop the daemon and clean up."""
        self.running = False
        self.stop_event.set()
        if self.worker_thread:
            self.worker_thread.join(timeout=5)
            self.worker_thread = None
        if self.httpd:
            self.httpd.shutdown()
            self.httpd.server_close()
            self.httpd = None

    def _make_handler(self):
        """Create a request handler with access to this daemon instance."""
        daemon = self

        class RequestHandler(BaseHTTPRequestHandler):
            def do_GET(self):
                path = self.path.split('?', 1)[0]
                if path == '/metrics':
                    self._handle_metrics()
                elif path == '/snapshot':
                    self._handle_snapshot()
                elif path == '/healthz':
                    self._handle_healthz()
                else:
                    self._handle_not_found()

            def _set_headers(self, status_code=200, content_type="application/json"):
                self.send_response(status_code)
                self.send_header("Content-Type", content_type)
                self.send_header("Cache-Control", "no-store")
                self.end_headers()

            def _handle_metrics(self):
                with daemon.lock:
                    data = daemon.latest_lines.encode('utf-8')
                self._set_headers(content_type="text/plain; charset=utf-8")
                self.wfile.write(data)

            def _handle_snapshot(self):
                with daemon.lock:
                    data = json.dumps(daemon.latest_results, indent=2).encode('utf-8')
                self._set_headers()
                self.wfile.write(data)

            def _handle_healthz(self):
                self._set_headers(content_type="text/plain")
                self.wfile.write(b"ok\n")

            def _handle_not_found(self):
                self._set_headers(404)
                self.wfile.write(json.dumps({
                    "error": "Not found",
                    "endpoints": ["/metrics", "/snapshot", "/healthz"]
                }).encode('utf-8'))

            def log_message(self, fmt, *args):
                log.debug(f"{self.address_string()} - {fmt % args}")

        return RequestHandler


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(prog="lotus-metrics-daemon", description='Lotus metrics daemon')
    add_connection_args(parser)
    parser.add_argument('--host', default='0.0.0.0',
                        help='Host to bind the HTTP server to (default: 0.0.0.0)')
    parser.add_argument('--port', type=int, default=9273,
                        help='Port to run the HTTP server on (default: 9273)')
    parser.add_argument('--interval', type=int, default=60,
                        help='Collection interval in seconds (default: 60)')
    parser.add_argument('--output',
                        help='Also write every cycle as JSON to this file')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug output (overrides --log-level)')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        help='Logging level (default: INFO, ignored if --debug is used)')
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(debug=args.debug, level=args.log_level)

    try:
        config: LotusConfig = config_from_args(args)
    except ConfigurationError as e:
        log.error(f"Invalid configuration: {e}")
        sys.exit(1)

    daemon = CollectorDaemon(Collector.from_config(config), {
        'host': args.host,
        'port': args.port,
        'interval': args.interval,
        'output_file': args.output,
    })

    try:
        daemon.start()
    except KeyboardInterrupt:
        log.info("Shutting down...")
    except OSError as e:
        log.error(f"Fatal error: {e}")
        sys.exit(1)
    finally:
        daemon.stop()


if __name__ == '__main__':
    main()
