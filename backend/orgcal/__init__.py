# backend/orgcal/__init__.py
"""
Organization calendar backend: rooms, bookings and recurring event series.

Environment variables from a .env file are loaded here, before any module
reads its configuration with os.getenv.
"""

from dotenv import load_dotenv

load_dotenv()
