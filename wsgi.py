"""WSGI entry point for production deployment."""
import os
import sys
import logging
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).parent))

from main import init_components
from web.app import create_app

logger = logging.getLogger("stockalert.wsgi")

components = init_components(os.environ.get("STOCKALERT_CONFIG"))
manager = components["manager"]

app = create_app(manager)

# Start background monitoring so alerts fire without a manual check
try:
    manager.initialize()
except Exception as e:
    logger.warning(f"Startup monitoring failed (use POST /api/alerts/check): {e}")
