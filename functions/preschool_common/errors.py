# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================


class PreschoolError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500


class ValidationError(PreschoolError):
    """A required field is missing or a value is malformed."""

    status_code = 400


class NotFoundError(PreschoolError):
    status_code = 404


class DocumentNotFoundError(NotFoundError):
    """Raised by document stores when updating a document that does not exist."""

    def __init__(self, path: str):
        super().__init__(f"Document not found: {path}")
        self.path = path


class AuthenticationError(PreschoolError):
    status_code = 401


class PermissionDeniedError(PreschoolError):
    status_code = 403


class StorageNotConfiguredError(PreschoolError):
    status_code = 409

    def __init__(self, message: str = "Storage not configured for this organization"):
        super().__init__(message)
