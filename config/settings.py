"""
settings.py - Central configuration for the Bat Monitoring Dashboard

Values are read from the environment (optionally a local .env file).
Secrets such as the backend User-Agent may live in Streamlit's secrets.toml.
"""

import os
from dotenv import load_dotenv


# --- Load .env ---

load_dotenv()


# --- Helper Functions ---

def env_int(env_var: str, default: int) -> int:
    """
    Read a positive integer from an environment variable, falling back to a default.
    """
    raw = os.getenv(env_var)
    try:
        value = int(raw) if raw is not None else default
    except ValueError:
        return default
    return value if value > 0 else default


def env_flag(env_var: str, default: str = 'False') -> bool:
    return os.getenv(env_var, default).lower() in ('true', '1', 'yes')


# --- Database & Environment ---

DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///./bat_monitor.db')
DEBUG = env_flag('DEBUG')
ENVIRONMENT = os.getenv('ENV', 'development')

# --- Logging ---
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
LOG_FILE = os.getenv('LOG_FILE', 'bat_monitor.log')

# --- Prediction Backend ---
API_BASE_URL = os.getenv('API_BASE_URL', 'http://localhost:5000').rstrip('/')
REQUEST_TIMEOUT = env_int('REQUEST_TIMEOUT', 30)
PREDICT_TIMEOUT = env_int('PREDICT_TIMEOUT', 120)

# --- Dashboard Behaviour ---
SUCCESS_WINDOW_SEC = env_int('SUCCESS_WINDOW_SEC', 5)
REFRESH_INTERVAL_SEC = env_int('REFRESH_INTERVAL_SEC', 3)
MAX_UNITS = env_int('MAX_UNITS', 10)
HISTORY_PAGE_SIZE = env_int('HISTORY_PAGE_SIZE', 5)
SCHEDULED_PAGE_SIZE = env_int('SCHEDULED_PAGE_SIZE', 5)

# --- Secrets & User-Agent ---
DEFAULT_USER_AGENT = 'BatMonitorDashboard/1.0 (example@example.com)'
try:
    import streamlit as st
    try:
        USER_AGENT = st.secrets.get("USER_AGENT", os.getenv('USER_AGENT', DEFAULT_USER_AGENT))
    except FileNotFoundError:
        USER_AGENT = os.getenv('USER_AGENT', DEFAULT_USER_AGENT)
except ImportError:
    USER_AGENT = os.getenv('USER_AGENT', DEFAULT_USER_AGENT)

HEADERS = {
    "User-Agent": USER_AGENT
}
