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

import unittest

from preschool_common.json_utils import camel_to_snake, convert_keys, snake_to_camel


class JsonUtilsTest(unittest.TestCase):

    def test_snake_to_camel(self):
        self.assertEqual(snake_to_camel("first_name"), "firstName")
        self.assertEqual(snake_to_camel("allow_public_registration"), "allowPublicRegistration")
        self.assertEqual(snake_to_camel("status"), "status")

    def test_camel_to_snake(self):
        self.assertEqual(camel_to_snake("guardianEmail"), "guardian_email")
        self.assertEqual(camel_to_snake("id"), "id")

    def test_convert_keys_walks_nested_values(self):
        data = {
            "total_days": 1,
            "daily_stats": [{"date": "2025-01-06", "present_count": 2}],
            "extra": {"check_in": "08:00"},
        }
        self.assertEqual(
            convert_keys(data, "snake_to_camel"),
            {
                "totalDays": 1,
                "dailyStats": [{"date": "2025-01-06", "presentCount": 2}],
                "extra": {"checkIn": "08:00"},
            },
        )
        self.assertEqual(
            convert_keys({"studentIds": ["s_1"]}, "camel_to_snake"),
            {"student_ids": ["s_1"]},
        )

    def test_unknown_mode_raises(self):
        with self.assertRaises(ValueError):
            convert_keys({}, "kebab")


if __name__ == "__main__":
    unittest.main()
