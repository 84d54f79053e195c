"""
Lazy-init shared dependencies used across multiple routers.
"""

import logging

from fastapi import HTTPException
from fastapi.requests import HTTPConnection

from sutra import settings

logger = logging.getLogger("sutra-server")

# Global singletons - initialized lazily
gcs = None


def get_gcs():
    """Lazy initialization of GCS Bucket Manager"""
    global gcs
    if gcs is None:
        try:
            from sutra.infrastructure.gcs import GCSBucketManager
            logger.info("Initializing GCS Bucket Manager (lazy)...")
            gcs = GCSBucketManager(bucket_name=settings.GCS_BUCKET_NAME)
            logger.info("GCS Bucket Manager initialized successfully")
        except Exception as e:
            logger.error(f"GCS Bucket Manager initialization failed: {e}")
    return gcs


def get_services():
    """Consult services singleton; initialized on first use if startup hasn't run."""
    from sutra.consult.setup import get_services as _get_services, initialize_consult

    services = _get_services()
    if services is None:
        try:
            services = initialize_consult()
        except Exception as e:
            logger.error(f"Consult services initialization failed: {e}")
            raise HTTPException(status_code=503, detail="Service unavailable")
    return services


def get_caller(connection: HTTPConnection):
    """Caller identity stamped onto the request by the upstream identity provider."""
    from sutra.consult.identity import HeaderIdentityProvider
    return HeaderIdentityProvider(connection.headers).get_current_user()
