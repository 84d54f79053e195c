"""
Centralized configuration for Sutra.
All env-based constants live here; modules import them from this file.
"""

import os
from dotenv import load_dotenv

load_dotenv()

# --- Public app origin (embedded in referral QR codes) ---
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:3000")

# --- AI processing service (voice notes) ---
AI_API_URL = os.getenv("AI_API_URL", "")
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "60"))

# --- Data store ---
STORE_BACKEND = os.getenv("STORE_BACKEND", "memory")  # "memory" or "gcs"
GCS_BUCKET_NAME = os.getenv("GCS_BUCKET_NAME", "sutra_dev")
STORE_PREFIX = os.getenv("STORE_PREFIX", "sutra")

# --- Identity (set by the upstream identity provider) ---
IDENTITY_HEADER = os.getenv("IDENTITY_HEADER", "X-Sutra-User-Id")
ANONYMOUS_HEADER = os.getenv("ANONYMOUS_HEADER", "X-Sutra-Anonymous")

# --- Admin ---
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "")

# --- Server ---
PORT = int(os.getenv("PORT", "8080"))
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
