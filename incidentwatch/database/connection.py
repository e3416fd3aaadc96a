"""
Firebase connection management for IncidentWatch
Initializes the firebase-admin app backing the Firestore report stores.
"""

import logging
from typing import Optional

import firebase_admin
from firebase_admin import credentials, firestore, firestore_async

from incidentwatch.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class FirebaseConnection:
    """
    Lazily initialized firebase-admin app.

    Uses a service account file when one is configured, otherwise
    Application Default Credentials.
    """

    def __init__(
        self,
        credentials_path: Optional[str] = None,
        project_id: Optional[str] = None,
        app_name: str = "[DEFAULT]",
        settings: Optional[Settings] = None
    ):
        """
        Initialize connection settings.

        Args:
            credentials_path: Path to a service account JSON file
            project_id: Firebase project ID
            app_name: firebase-admin app name
            settings: Application settings (defaults to the cached instance)
        """
        settings = settings or get_settings()
        self.credentials_path = credentials_path or settings.firebase_credentials_path
        self.project_id = project_id or settings.firebase_project_id
        self.storage_bucket = settings.storage_bucket
        self.app_name = app_name

        self._app: Optional[firebase_admin.App] = None

    @property
    def app(self) -> firebase_admin.App:
        if self._app is None:
            self._app = self._initialize()
        return self._app

    def _initialize(self) -> firebase_admin.App:
        try:
            return firebase_admin.get_app(self.app_name)
        except ValueError:
            pass

        if self.credentials_path:
            cred = credentials.Certificate(self.credentials_path)
        else:
            cred = credentials.ApplicationDefault()

        options = {"storageBucket": self.storage_bucket}
        if self.project_id:
            options["projectId"] = self.project_id

        app = firebase_admin.initialize_app(cred, options, name=self.app_name)
        logger.info(f"Firebase app initialized: {self.project_id or 'default project'}")
        return app

    def firestore_client(self):
        """Synchronous Firestore client (required for snapshot listeners)."""
        return firestore.client(self.app)

    def firestore_async_client(self):
        """Async Firestore client used for document writes."""
        return firestore_async.client(self.app)
