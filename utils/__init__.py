"""Utility modules for stockalert."""
from utils.logger import setup_logging
from utils.formatters import format_usd, format_number, format_timestamp, time_ago
from utils.history import BoundedHistory
