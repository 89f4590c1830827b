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

from dataclasses import dataclass, field
from enum import StrEnum
from typing import List


class StudentStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    WAITLIST = "waitlist"
    REJECTED = "rejected"


class EnrollmentStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    COMPLETED = "completed"


class AttendanceStatus(StrEnum):
    PRESENT = "present"
    ABSENT = "absent"
    TARDY = "tardy"
    EXCUSED = "excused"


class CurriculumStatus(StrEnum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class UserRole(StrEnum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STAFF = "staff"
    PARENT = "parent"


class PermissionAction(StrEnum):
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"


class NotificationType(StrEnum):
    WAITLIST = "waitlist"


@dataclass
class UploadedFile:
    """A file stored under a student's documents folder."""

    name: str
    url: str
    type: str
    size: int
    path: str


@dataclass
class DailyAttendanceStat:
    date: str
    present: int = 0
    absent: int = 0
    tardy: int = 0
    excused: int = 0
    total: int = 0
    rate: int = 0


@dataclass
class AttendanceStats:
    """Attendance totals over a date range, plus one entry per recorded day."""

    total_days: int = 0
    present_count: int = 0
    absent_count: int = 0
    tardy_count: int = 0
    excused_count: int = 0
    attendance_rate: int = 0
    daily_stats: List[DailyAttendanceStat] = field(default_factory=list)
