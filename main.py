#!/usr/bin/env python3
"""
Main entry point for the docker-pull-stats dashboard on App Engine.
"""

from docker_pull_stats.config import load_configuration
from docker_pull_stats.server import run_server

if __name__ == "__main__":
    # PORT defaults to 8000 locally; App Engine sets it
    run_server(load_configuration())
