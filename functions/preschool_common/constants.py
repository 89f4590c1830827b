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

# Top-level collections
ORGANIZATIONS_COLLECTION = "organizations"
USERS_COLLECTION = "users"

# Organization sub-collections
MEMBERS_COLLECTION = "members"
STUDENTS_COLLECTION = "students"
STAFF_COLLECTION = "staff"
STAFF_SCHEDULES_COLLECTION = "staff_schedules"
CURRICULUM_COLLECTION = "curriculum"
CLASSES_COLLECTION = "classes"
ENROLLMENTS_COLLECTION = "enrollments"
PROGRAMS_COLLECTION = "programs"
GUARDIANS_COLLECTION = "guardians"
ATTENDANCE_COLLECTION = "attendance"
MEALS_COLLECTION = "meals"
MEAL_PLANS_COLLECTION = "mealPlans"
LESSONS_COLLECTION = "lessons"
EVENTS_COLLECTION = "events"
WAITLIST_COLLECTION = "waitlist"
NOTIFICATIONS_COLLECTION = "notifications"
MESSAGES_COLLECTION = "messages"

# Object storage
STORAGE_CONFIG_PATH = "config/storage.json"
STUDENT_DOCUMENTS_FOLDER = "documents"

# Limits
UPCOMING_LIMIT = 5
GUARDIAN_SEARCH_LIMIT = 5
MAX_MESSAGE_SUBJECT_LENGTH = 200
MAX_MESSAGE_CONTENT_LENGTH = 10000

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"

# Upper bound appended to a prefix for range-based prefix search.
PREFIX_SEARCH_SENTINEL = "\uf8ff"

DEFAULT_ADMIN_EMAILS = (
    "admin@preschoolpro.com",
    "admin2@preschoolpro.com",
    "newadmin@preschoolpro.com",
)
