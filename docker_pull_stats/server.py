#!/usr/bin/env python3
"""
Docker Hub Pull Statistics Web Server

A simple web server that renders the windowed pull statistics as an HTML
table and exposes them via a JSON API.
"""

import html
import http.server
import json
import logging
import re
import threading
import time
import urllib.parse
from datetime import timedelta
from http import HTTPStatus
from typing import Callable, List, Optional, Tuple

from .app import DockerHubSampler, PullRecorder, create_sampler, run_sync, sync_pull_counts
from .config import Settings, load_configuration
from .db_factory import get_database_manager
from .models import CombinedStats, Entity, utc_now
from .stats import StatsAggregator, WindowResolver

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

STATS_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Docker Hub Statistics</title>
    <style>
        body {{ font-family: Arial, sans-serif; margin: 0; padding: 20px; background-color: #f5f5f5; }}
        .container {{ max-width: 1000px; margin: 0 auto; background-color: white; border-radius: 8px;
                      box-shadow: 0 2px 10px rgba(0, 0, 0, 0.1); padding: 20px; }}
        h1, h2 {{ color: #333; }}
        h1 {{ text-align: center; }}
        table {{ width: 100%; border-collapse: collapse; margin-top: 20px; }}
        th, td {{ padding: 12px 15px; text-align: left; border-bottom: 1px solid #ddd; }}
        th {{ background-color: #f2f2f2; font-weight: bold; }}
        tr:hover {{ background-color: #f9f9f9; }}
        .positive {{ color: green; }}
        .updated-time {{ text-align: center; color: #666; margin-top: 20px; font-size: 14px; }}
    </style>
</head>
<body>
    <div class="container">
        <h1>Docker Hub Statistics</h1>
        <div>
            <h2>Pull Statistics</h2>
            <table>
                <thead>
                    <tr>
                        <th>Repository</th>
                        <th>Total Pulls</th>
                        <th>1 Day</th>
                        <th>7 Days</th>
                        <th>30 Days</th>
                    </tr>
                </thead>
                <tbody>
{rows}
                </tbody>
            </table>
        </div>
        <p class="updated-time">Last updated: {updated}</p>
    </div>
</body>
</html>
"""

STATS_ROW_TEMPLATE = """                    <tr>
                        <td>{repository}</td>
                        <td>{total:,}</td>
                        <td class="positive">+{one_day:,}</td>
                        <td class="positive">+{seven_day:,}</td>
                        <td class="positive">+{thirty_day:,}</td>
                    </tr>"""


def generate_stats_html(stats: List[CombinedStats], updated: Optional[str] = None) -> str:
    """Render the combined statistics as an HTML page."""
    rows = "\n".join(
        STATS_ROW_TEMPLATE.format(
            repository=html.escape(stat.key),
            total=stat.total_pulls,
            one_day=stat.one_day_pulls,
            seven_day=stat.seven_day_pulls,
            thirty_day=stat.thirty_day_pulls,
        )
        for stat in stats
    )
    if updated is None:
        updated = time.strftime('%Y-%m-%d %H:%M:%S')
    return STATS_PAGE_TEMPLATE.format(rows=rows, updated=html.escape(updated))


def generate_badge_svg(label: str, message: str, color: str) -> str:
    """Generate an SVG badge with the given parameters."""
    label, message = html.escape(label), html.escape(message)
    # Simple badge template with fixed dimensions
    label_width = len(label) * 7 + 10
    message_width = len(message) * 7 + 10
    total_width = label_width + message_width

    return f'''<svg xmlns="http://www.w3.org/2000/svg" width="{total_width}" height="20">
    <linearGradient id="b" x2="0" y2="100%">
        <stop offset="0" stop-color="#bbb" stop-opacity=".1"/>
        <stop offset="1" stop-opacity=".1"/>
    </linearGradient>
    <mask id="a">
        <rect width="{total_width}" height="20" rx="3" fill="#fff"/>
    </mask>
    <g mask="url(#a)">
        <rect width="{label_width}" height="20" fill="#555"/>
        <rect x="{label_width}" width="{message_width}" height="20" fill="{color}"/>
        <rect width="{total_width}" height="20" fill="url(#b)"/>
    </g>
    <g fill="#fff" text-anchor="middle" font-family="DejaVu Sans,Verdana,Geneva,sans-serif" font-size="11">
        <text x="{label_width/2}" y="15" fill="#010101" fill-opacity=".3">{label}</text>
        <text x="{label_width/2}" y="14">{label}</text>
        <text x="{label_width + message_width/2}" y="15" fill="#010101" fill-opacity=".3">{message}</text>
        <text x="{label_width + message_width/2}" y="14">{message}</text>
    </g>
    </svg>'''


class StatsServer(http.server.HTTPServer):
    """HTTP server that carries the collaborators shared by every request."""

    def __init__(self, server_address, settings: Settings, db_manager, sampler: DockerHubSampler):
        super().__init__(server_address, StatsRequestHandler)
        self.settings = settings
        self.db_manager = db_manager
        self.sampler = sampler
        self.recorder = PullRecorder(db_manager)
        self.aggregator = StatsAggregator(sampler, WindowResolver(db_manager), settings.entities)


class StatsRequestHandler(http.server.BaseHTTPRequestHandler):
    """A custom request handler to serve pull statistics."""

    server: StatsServer

    def _send_body(self, body: str, content_type: str, status: HTTPStatus = HTTPStatus.OK, headers=None):
        encoded = body.encode('utf-8')
        self.send_response(status)
        self.send_header("Content-type", content_type)
        self.send_header("Content-Length", str(len(encoded)))
        for name, value in (headers or {}).items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(encoded)

    def _send_json_response(self, data, status: HTTPStatus = HTTPStatus.OK):
        """Send a JSON response with consistent headers."""
        self._send_body(json.dumps(data, indent=2), "application/json", status)

    def _send_json_error(self, message: str, status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR):
        """Send a JSON error response."""
        self._send_json_response({"success": False, "message": message}, status)

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} - {format % args}")

    def do_GET(self):
        """Handle GET requests."""
        parsed_path = urllib.parse.urlparse(self.path)
        path = parsed_path.path
        query_params = urllib.parse.parse_qs(parsed_path.query)

        if path == "/" or path == "/index.html":
            self.send_stats_page()
        elif path == "/api/stats":
            self.send_stats()
        elif path == "/test-fetch":
            self.send_test_fetch()
        elif path == "/api/repo/history":
            repo_name = query_params.get('repo', [None])[0]
            days = query_params.get('days', ['30'])[0]
            if not repo_name:
                self._send_json_error("Missing 'repo' parameter", HTTPStatus.BAD_REQUEST)
            else:
                self.send_repo_history(repo_name, days)
        elif match := re.fullmatch(r"/badge/([^/]+)/([^/]+)/pulls\.svg", path):
            self.send_badge(Entity(match.group(1), match.group(2)))
        else:
            self._send_json_error("Not found", HTTPStatus.NOT_FOUND)

    def send_stats_page(self):
        """Render the statistics table."""
        try:
            stats = self.server.aggregator.compute_combined_stats()
            self._send_body(generate_stats_html(stats), "text/html; charset=utf-8")
        except Exception as e:
            logger.error(f"Failed to render stats page: {e}")
            self._send_json_error(f"Error: {e}")

    def send_stats(self):
        """Send the combined statistics as JSON."""
        try:
            stats = self.server.aggregator.compute_combined_stats()
            self._send_json_response({
                "success": True,
                "stats": [stat.to_dict() for stat in stats],
                "timestamp": time.strftime('%Y-%m-%d %H:%M:%S')
            })
        except Exception as e:
            logger.error(f"Failed to compute stats: {e}")
            self._send_json_error(f"Error: {e}")

    def send_test_fetch(self):
        """Sample and record every repository, then return the raw samples."""
        logger.info("Manual fetch requested.")
        try:
            samples = sync_pull_counts(self.server.sampler, self.server.recorder, self.server.settings.entities)
            self._send_json_response([sample.to_dict() for sample in samples])
        except Exception as e:
            logger.error(f"Manual fetch failed: {e}")
            self._send_json_error(f"Error: {e}")

    def send_repo_history(self, repo_name: str, days: str):
        """Send recorded samples for a specific repository."""
        try:
            entity = Entity.parse(repo_name)
            days = int(days)
            if days <= 0:
                raise ValueError("'days' must be positive")
        except ValueError as e:
            self._send_json_error(str(e), HTTPStatus.BAD_REQUEST)
            return

        try:
            since = utc_now() - timedelta(days=days)
            history = self.server.db_manager.get_history(entity.key, since)
            self._send_json_response({
                "success": True,
                "repo": entity.key,
                "days": days,
                "data": [sample.to_dict() for sample in history]
            })
        except Exception as e:
            logger.error(f"Failed to retrieve history for {entity}: {e}")
            self._send_json_error(f"Database error: {e}")

    def send_badge(self, entity: Entity):
        """Serve a dynamic SVG badge with the latest recorded total."""
        try:
            latest = self.server.db_manager.latest_sample(entity.key)
        except Exception as e:
            logger.error(f"Database error for repo {entity}: {e}")
            self._send_json_error("Failed to retrieve stats from the database.")
            return

        if latest is None:
            svg_content = generate_badge_svg("pulls", "unknown", "lightgrey")
        else:
            svg_content = generate_badge_svg("pulls", f"{latest.value:,}", "blue")

        self._send_body(svg_content, "image/svg+xml", headers={
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "Pragma": "no-cache",
            "Expires": "0",
        })


class BackgroundSyncThread(threading.Thread):
    """A background thread to periodically sample and record pull counts."""

    def __init__(self, interval: float = 3600, sync: Callable[[], Tuple[bool, str]] = run_sync):
        """
        Initialize the background sync thread.

        Args:
            interval: Sync interval in seconds (default: 1 hour)
            sync: Callable running one sync pass, returning (success, message)
        """
        super().__init__(daemon=True)
        self.interval = interval
        self.sync = sync
        self._stopped = threading.Event()

    def run(self):
        """Run the background sync loop."""
        logger.info(f"Starting background sync thread (interval: {self.interval}s)")

        while not self._stopped.wait(self.interval):
            try:
                logger.info("Running scheduled sync...")
                success, message = self.sync()
                if success:
                    logger.info("Scheduled sync completed successfully")
                else:
                    logger.error(f"Scheduled sync failed: {message}")
            except Exception as e:
                logger.error(f"Error in background sync: {e}")

    def stop(self):
        """Stop the background sync thread."""
        self._stopped.set()


def create_server(settings: Settings, port: int = 0, host: str = "",
                  db_manager=None, sampler: Optional[DockerHubSampler] = None) -> StatsServer:
    """Build a StatsServer wired to the configured store and Docker Hub."""
    if db_manager is None:
        db_manager = get_database_manager(settings)
        db_manager.setup_database()
    if sampler is None:
        sampler = create_sampler(settings)
    return StatsServer((host, port), settings, db_manager, sampler)


def run_server(settings: Optional[Settings] = None, port: Optional[int] = None,
               enable_background_sync: bool = True, sync_interval: Optional[int] = None):
    """
    Run the statistics web server.

    Args:
        settings: Loaded configuration (default: read from the environment)
        port: Port to listen on (default: settings.port)
        enable_background_sync: Whether to enable background syncing (default: True)
        sync_interval: Sync interval in seconds (default: settings.sync_interval)
    """
    if settings is None:
        settings = load_configuration()
    port = settings.port if port is None else port
    sync_interval = settings.sync_interval if sync_interval is None else sync_interval

    if not settings.entities:
        logger.warning("No Docker repositories configured; the dashboard will be empty")

    sync_thread = None
    if enable_background_sync:
        sync_thread = BackgroundSyncThread(sync_interval, lambda: run_sync(settings))
        sync_thread.start()

    with create_server(settings, port) as httpd:
        logger.info(f"Starting server on port {port}")
        logger.info(f"Visit http://localhost:{port} to view statistics")
        if sync_thread:
            logger.info(f"Background sync enabled (interval: {sync_interval}s)")

        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            logger.info("Server stopped by user")
        finally:
            if sync_thread:
                sync_thread.stop()


if __name__ == "__main__":
    run_server()
