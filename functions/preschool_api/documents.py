"""
Student documents (birth certificates, medical forms, ...) kept in object storage.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import PurePosixPath
from typing import Callable, Optional

from preschool_api.storage import StorageClient
from preschool_common.constants import (
    ORGANIZATIONS_COLLECTION,
    STORAGE_CONFIG_PATH,
    STUDENT_DOCUMENTS_FOLDER,
    STUDENTS_COLLECTION,
)
from preschool_common.errors import (
    NotFoundError,
    StorageNotConfiguredError,
    ValidationError,
)
from preschool_common.types import UploadedFile

logger = logging.getLogger(__name__)

STORAGE_TYPES = ("google", "firebase")


def organization_prefix(org_id: str) -> str:
    return f"{ORGANIZATIONS_COLLECTION}/{org_id}/"


def storage_config_path(org_id: str) -> str:
    return organization_prefix(org_id) + STORAGE_CONFIG_PATH


def student_documents_prefix(org_id: str, student_id: str) -> str:
    return (
        organization_prefix(org_id)
        + f"{STUDENTS_COLLECTION}/{student_id}/{STUDENT_DOCUMENTS_FOLDER}/"
    )


def is_student_document_path(org_id: str, path: str) -> bool:
    """True only for ``organizations/{org}/students/{id}/documents/{file}``."""
    parts = path.split("/")
    return (
        len(parts) == 6
        and parts[:2] == [ORGANIZATIONS_COLLECTION, org_id]
        and parts[2] == STUDENTS_COLLECTION
        and parts[4] == STUDENT_DOCUMENTS_FOLDER
        and all(part not in ("", ".", "..") for part in parts)
    )


class StudentDocuments:
    """Upload, list and delete files attached to a student."""

    def __init__(
        self,
        storage: StorageClient,
        url_expires_in: int = 3600,
        clock: Callable[[], float] = time.time,
    ):
        self._storage = storage
        self._url_expires_in = url_expires_in
        self._clock = clock

    def configure_storage(self, org_id: str, config: dict) -> bool:
        if config.get("type") not in STORAGE_TYPES:
            raise ValidationError("Storage type must be 'google' or 'firebase'")
        try:
            self._storage.upload_bytes(
                storage_config_path(org_id),
                json.dumps(config).encode("utf-8"),
                content_type="application/json",
            )
        except Exception as e:
            logger.error("Error configuring storage for %s: %s", org_id, e)
            raise
        return True

    def get_storage_config(self, org_id: str) -> Optional[dict]:
        try:
            raw = self._storage.get_bytes(storage_config_path(org_id))
        except FileNotFoundError:
            return None
        return json.loads(raw)

    def is_storage_configured(self, org_id: str) -> bool:
        try:
            return self.get_storage_config(org_id) is not None
        except Exception as e:
            logger.warning("Unreadable storage config for %s: %s", org_id, e)
            return False

    def _require_configured(self, org_id: str) -> None:
        if not self.is_storage_configured(org_id):
            raise StorageNotConfiguredError()

    def upload_student_document(
        self,
        org_id: str,
        student_id: str,
        filename: str,
        data: bytes,
        content_type: str,
        document_type: str,
    ) -> UploadedFile:
        """
        Store a file as ``{document_type}_{epoch_ms}_{filename}`` under the
        student's documents folder and return its metadata with a signed URL.
        """
        name = PurePosixPath(filename or "").name
        if not name:
            raise ValidationError("File name is required")
        if not document_type or "_" in document_type or "/" in document_type:
            raise ValidationError(
                "Document type is required and may not contain '_' or '/'"
            )
        self._require_configured(org_id)

        timestamp = int(self._clock() * 1000)
        stored_name = f"{document_type}_{timestamp}_{name}"
        path = student_documents_prefix(org_id, student_id) + stored_name
        try:
            self._storage.upload_bytes(path, data, content_type=content_type)
            url = self._storage.presign_get(path, expires_in=self._url_expires_in)
        except Exception as e:
            logger.error("Error uploading student document %s: %s", path, e)
            raise

        return UploadedFile(
            name=name,
            url=url,
            type=content_type,
            size=len(data),
            path=path,
        )

    def get_student_documents(self, org_id: str, student_id: str) -> list[UploadedFile]:
        self._require_configured(org_id)
        prefix = student_documents_prefix(org_id, student_id)
        try:
            files = []
            for item in self._storage.list_objects(prefix):
                name = item.path[len(prefix):]
                files.append(
                    UploadedFile(
                        name=name,
                        url=self._storage.presign_get(
                            item.path, expires_in=self._url_expires_in
                        ),
                        # The stored file name starts with the document type.
                        type=name.split("_")[0],
                        size=item.size,
                        path=item.path,
                    )
                )
            return files
        except Exception as e:
            logger.error("Error getting student documents: %s", e)
            raise

    def delete_student_document(self, org_id: str, path: str) -> None:
        if not is_student_document_path(org_id, path):
            raise ValidationError("Path is not a student document of this organization")
        self._require_configured(org_id)
        try:
            self._storage.delete(path)
        except FileNotFoundError as e:
            raise NotFoundError(f"Document not found: {path}") from e
