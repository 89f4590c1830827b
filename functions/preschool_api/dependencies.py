"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import firebase_admin
from fastapi import Depends, Header
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials

from preschool_api.config import Settings, get_settings
from preschool_api.documents import StudentDocuments
from preschool_api.services import PreschoolServices
from preschool_api.storage import (
    FirebaseStorageClient,
    InMemoryStorageClient,
    S3StorageClient,
    StorageClient,
)
from preschool_api.store import (
    DocumentStore,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    SqlDocumentStore,
)
from preschool_common.errors import AuthenticationError, PermissionDeniedError

logger = logging.getLogger(__name__)

_document_store: DocumentStore | None = None
_storage_client: StorageClient | None = None
_services: PreschoolServices | None = None


def ensure_firebase_app(settings: Settings) -> firebase_admin.App:
    """Initialize the default firebase-admin app once per process."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        options = {}
        if settings.firebase_project_id:
            options["projectId"] = settings.firebase_project_id
        if settings.firebase_storage_bucket:
            options["storageBucket"] = settings.firebase_storage_bucket
        cred = (
            credentials.Certificate(settings.firebase_credentials_path)
            if settings.firebase_credentials_path
            else None
        )
        return firebase_admin.initialize_app(cred, options or None)


def get_document_store() -> DocumentStore:
    """
    Return a singleton document store so state persists across requests.
    """
    global _document_store
    if _document_store:
        return _document_store

    settings = get_settings()
    if settings.use_in_memory_backends:
        _document_store = InMemoryDocumentStore()
    elif settings.firebase_project_id:
        ensure_firebase_app(settings)
        _document_store = FirestoreDocumentStore()
    elif settings.database_url:
        _document_store = SqlDocumentStore(settings.database_url)
    else:
        logger.warning("No database configured; using in-memory document store")
        _document_store = InMemoryDocumentStore()
    return _document_store


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        _storage_client = InMemoryStorageClient()
    elif settings.firebase_storage_bucket:
        ensure_firebase_app(settings)
        _storage_client = FirebaseStorageClient(settings.firebase_storage_bucket)
    elif settings.s3_bucket:
        _storage_client = S3StorageClient(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    else:
        _storage_client = InMemoryStorageClient()
    return _storage_client


def get_services() -> PreschoolServices:
    global _services
    if _services:
        return _services
    _services = PreschoolServices(
        get_document_store(), admin_emails=get_settings().admin_emails
    )
    return _services


def get_student_documents(
    storage: StorageClient = Depends(get_storage_client),
) -> StudentDocuments:
    return StudentDocuments(
        storage, url_expires_in=get_settings().signed_url_expires_in
    )


@dataclass
class CurrentUser:
    uid: str
    email: Optional[str] = None


def _uses_firebase_auth(settings: Settings) -> bool:
    return bool(settings.firebase_project_id) and not settings.use_in_memory_backends


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
) -> CurrentUser:
    """
    Identify the caller.

    With Firebase configured a bearer ID token is required. Otherwise the
    ``X-User-Id`` and ``X-User-Email`` headers are trusted (development and
    tests).
    """
    settings = get_settings()
    if _uses_firebase_auth(settings):
        if not authorization or not authorization.lower().startswith("bearer "):
            raise AuthenticationError("Missing bearer token")
        ensure_firebase_app(settings)
        try:
            claims = firebase_auth.verify_id_token(authorization.split(" ", 1)[1])
        except (
            ValueError,
            firebase_auth.InvalidIdTokenError,
            firebase_auth.CertificateFetchError,
        ) as e:
            raise AuthenticationError("Invalid authentication token") from e
        # Admin e-mails grant access, so only a verified address counts.
        email = claims.get("email") if claims.get("email_verified") is True else None
        return CurrentUser(uid=claims["uid"], email=email)

    if not x_user_id:
        raise AuthenticationError("Authentication required")
    return CurrentUser(uid=x_user_id, email=x_user_email)


def require_permission(module: str, action: str):
    """Dependency factory checking the caller's permission in ``{org_id}``."""

    def _check(
        org_id: str,
        user: CurrentUser = Depends(get_current_user),
        services: PreschoolServices = Depends(get_services),
    ) -> CurrentUser:
        access = services.resolve_access(org_id, user.uid, user.email)
        if not access.can(module, action):
            raise PermissionDeniedError(
                f"You do not have permission to {action} {module}"
            )
        return user

    return _check
