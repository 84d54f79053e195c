"""
GCS bucket access for the consult store.

The client is built on first use, so importing the app (or running the
in-memory backend) never needs credentials.
"""

import os
import logging
from google.cloud import storage

logger = logging.getLogger("gcs-manager")


class GCSBucketManager:
    def __init__(self, bucket_name, service_account_json_path=None):
        """
        :param bucket_name: Bucket holding the consult rows.
        :param service_account_json_path: Optional key file.  Without one the
                                          default environment credentials are used.
        """
        self.bucket_name = bucket_name
        self.service_account_json_path = service_account_json_path
        self._client = None
        self._bucket = None

    def _ensure_initialized(self):
        if self._client is not None:
            return
        project_id = os.getenv("PROJECT_ID")
        try:
            if self.service_account_json_path:
                client = storage.Client.from_service_account_json(
                    self.service_account_json_path, project=project_id
                )
            else:
                client = storage.Client(project=project_id)
            bucket = client.bucket(self.bucket_name)
            if not bucket.exists():
                logger.warning("Bucket '%s' does not exist or is not visible to this account", self.bucket_name)
        except Exception as e:
            logger.error("GCS client init failed for bucket '%s': %s", self.bucket_name, e)
            raise
        self._client, self._bucket = client, bucket
        logger.info("GCS client ready (bucket=%s, project=%s)", self.bucket_name, project_id or "default")

    @property
    def client(self):
        self._ensure_initialized()
        return self._client

    @property
    def bucket(self):
        self._ensure_initialized()
        return self._bucket

    # ── Object access ──

    def blob(self, path: str):
        """Handle for one object; nothing is fetched until it is read."""
        return self.bucket.blob(path)

    def list_blobs(self, prefix: str):
        """Every object under ``prefix`` (eagerly listed)."""
        return list(self.client.list_blobs(self.bucket_name, prefix=prefix))
