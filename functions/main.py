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

# Cloud functions for the preschool backend - public registration flow.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.

# Standard library imports
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Optional

# Third-party library imports
from dacite import from_dict, Config
from firebase_admin import initialize_app, firestore
from firebase_functions import https_fn, logger, options

# Local application imports
from preschool_api.services import PreschoolServices
from preschool_api.store import FirestoreDocumentStore
from preschool_common.errors import NotFoundError, ValidationError
from preschool_common.json_utils import convert_keys

initialize_app()


@dataclass
class PublicRegistration:
    organization_id: str = ""
    first_name: str = ""
    last_name: str = ""
    date_of_birth: Optional[str] = None
    age_group: Optional[str] = None
    guardian_name: Optional[str] = None
    guardian_email: Optional[str] = None
    guardian_phone: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class PublicOrganization:
    id: str
    name: Optional[str] = None


@dataclass
class RegistrationStatusRequest:
    organization_id: str = ""
    student_id: str = ""


def _services() -> PreschoolServices:
    return PreschoolServices(FirestoreDocumentStore(firestore.client()))


def _to_json(value: Any) -> Any:
    """Make Firestore values (timestamps included) JSON serializable."""
    if isinstance(value, dict):
        return {k: _to_json(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_json(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _parse(data_class, data: Any):
    if not isinstance(data, dict):
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Request data must be an object.",
        )
    return from_dict(data_class=data_class, data=data, config=Config(check_types=False))


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def get_public_organizations(req: https_fn.CallableRequest) -> dict:
    """
    Lists the organizations that accept public registrations.

    Returns:
        A dictionary with the list of organizations (id and name only).
    """
    organizations = [
        PublicOrganization(id=org["id"], name=org.get("name"))
        for org in _services().get_public_organizations()
    ]
    return {"organizations": [asdict(org) for org in organizations]}


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def create_public_registration(req: https_fn.CallableRequest) -> dict:
    """
    Registers a child on an organization's waitlist.

    Args:
        req (https_fn.CallableRequest): The request, containing the
          registration form fields in snake_case.

    Returns:
        The created student record with camelCase keys.
    """
    registration = _parse(PublicRegistration, req.data)
    student_data = {
        key: value
        for key, value in convert_keys(asdict(registration), "snake_to_camel").items()
        if value is not None
    }

    try:
        student = _services().create_public_registration(student_data)
    except ValidationError as e:
        raise https_fn.HttpsError(https_fn.FunctionsErrorCode.INVALID_ARGUMENT, str(e))
    except NotFoundError:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.NOT_FOUND,
            "The organization is not accepting registrations.",
        )
    except Exception as e:
        logger.error(f"Error creating public registration: {e}")
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INTERNAL, "Registration could not be saved."
        )
    return _to_json(student)


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def get_registration_status(req: https_fn.CallableRequest) -> dict:
    request = _parse(RegistrationStatusRequest, req.data)
    if not request.organization_id or not request.student_id:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Must specify organization_id and student_id.",
        )

    try:
        status = _services().get_registration_status(
            request.organization_id, request.student_id
        )
    except NotFoundError:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.NOT_FOUND,
            "The requested registration was not found.",
        )
    return _to_json(status)
