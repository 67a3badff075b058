from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

import firebase_admin
from firebase_admin import auth, credentials, exceptions, firestore, storage

from treino.config import Settings
from treino.constants import FIRESTORE_BATCH_LIMIT
from treino.errors import AuthenticationError

logger = logging.getLogger(__name__)

Where = Tuple[str, str, Any]


def init_firebase(settings: Settings) -> firebase_admin.App:
    """Initialize the default Firebase app once (service account or ADC)."""
    if firebase_admin._apps:
        return firebase_admin.get_app()
    options: Dict[str, Any] = {}
    if settings.project_id:
        options["projectId"] = settings.project_id
    if settings.storage_bucket:
        options["storageBucket"] = settings.storage_bucket
    cred = credentials.Certificate(settings.credentials_path) if settings.credentials_path else None
    logger.info("initializing firebase app for project %s", settings.project_id)
    return firebase_admin.initialize_app(cred, options or None)


def verify_id_token(token: str) -> Dict[str, Any]:
    """Claims of a Firebase Auth ID token, checked for signature, expiry and project."""
    try:
        return auth.verify_id_token(token)
    except (ValueError, exceptions.FirebaseError) as exc:
        logger.info("rejected id token: %s", exc)
        raise AuthenticationError("Sessão inválida ou expirada.") from exc


class FirestoreStore:
    """Path-based facade over a Firestore client (`collection/doc[/sub/doc]`)."""

    def __init__(self, client):
        self.client = client

    @classmethod
    def from_app(cls, app: firebase_admin.App) -> "FirestoreStore":
        return cls(firestore.client(app))

    def timestamp(self):
        return firestore.SERVER_TIMESTAMP

    def get(self, path: str) -> Optional[Dict[str, Any]]:
        snap = self.client.document(path).get()
        return snap.to_dict() if snap.exists else None

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        self.client.document(path).set(data, merge=merge)

    def add(self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        coll = self.client.collection(collection)
        ref = coll.document(doc_id) if doc_id else coll.document()
        ref.set(data)
        return ref.id

    def delete(self, path: str) -> None:
        self.client.document(path).delete()

    def list(
        self,
        collection: str,
        where: Optional[Iterable[Where]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Tuple[str, Dict[str, Any]]]:
        query = self.client.collection(collection)
        for field, op, value in where or []:
            query = query.where(filter=firestore.FieldFilter(field, op, value))
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        return [(snap.id, snap.to_dict() or {}) for snap in query.stream()]

    def delete_many(self, paths: Iterable[str]) -> int:
        """Delete documents in one batch per FIRESTORE_BATCH_LIMIT paths."""
        paths = list(paths)
        for start in range(0, len(paths), FIRESTORE_BATCH_LIMIT):
            batch = self.client.batch()
            for path in paths[start:start + FIRESTORE_BATCH_LIMIT]:
                batch.delete(self.client.document(path))
            batch.commit()
        return len(paths)

    def set_many(self, items: Iterable[Tuple[str, Dict[str, Any]]], merge: bool = True) -> int:
        items = list(items)
        for start in range(0, len(items), FIRESTORE_BATCH_LIMIT):
            batch = self.client.batch()
            for path, data in items[start:start + FIRESTORE_BATCH_LIMIT]:
                batch.set(self.client.document(path), data, merge=merge)
            batch.commit()
        return len(items)


class StorageBucket:
    """Object storage facade over a Cloud Storage bucket."""

    def __init__(self, bucket):
        self.bucket = bucket

    @classmethod
    def from_app(cls, app: firebase_admin.App) -> "StorageBucket":
        return cls(storage.bucket(app=app))

    def download(self, path: str) -> bytes:
        return self.bucket.blob(path).download_as_bytes()

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        blob = self.bucket.blob(path)
        blob.upload_from_string(data, content_type=content_type)
        return path

    def delete(self, path: str) -> None:
        self.bucket.blob(path).delete()

    def url_for(self, path: str, expires: timedelta = timedelta(days=7)) -> str:
        return self.bucket.blob(path).generate_signed_url(expiration=expires, version="v4")
