"""Top-level package for the capgate capability-token authorization service."""

__all__ = [
    "APP_ENV",
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "UCAN_SECRET",
]

from dotenv import load_dotenv
import os
load_dotenv()

# Environment variables
SUPABASE_URL = os.environ.get("SUPABASE_URL")
SUPABASE_KEY = os.environ.get("SUPABASE_KEY")

if not SUPABASE_URL or not SUPABASE_KEY:
    raise RuntimeError("Supabase env vars not configured")

# Authority secret – every required capability is rooted in the DID derived from it
UCAN_SECRET = os.environ.get("UCAN_SECRET")

if not UCAN_SECRET:
    raise RuntimeError("UCAN_SECRET not configured")

APP_ENV = os.getenv("APP_ENV", "production")
