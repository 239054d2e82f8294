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

"""This file defines unit tests for functionalities in file_count_policy.py"""

import unittest

from gke_fio_benchmark.file_count_policy import DEFAULT_NUM_FILES
from gke_fio_benchmark.file_count_policy import num_files_for_size


class FileCountPolicyTest(unittest.TestCase):

  def test_tiers(self):
    expected = {
        '64K': 400,
        '256K': 400,
        '1M': 200,
        '4M': 200,
        '16M': 50,
        '64M': 50,
        '256M': 30,
        '512M': 30,
        '1G': 10,
        '2G': 10,
        '4G': 10,
        '10G': 4,
        '20G': 4,
    }
    for size, num_files in expected.items():
      with self.subTest(size=size):
        self.assertEqual(num_files_for_size(size), num_files)

  def test_unlisted_sizes_get_default(self):
    for size in ['100M', '128K', '8G', '', 'garbage']:
      with self.subTest(size=size):
        self.assertEqual(num_files_for_size(size), DEFAULT_NUM_FILES)
    self.assertEqual(DEFAULT_NUM_FILES, 20)

  def test_case_insensitive_label(self):
    self.assertEqual(num_files_for_size('64k'), 400)
    self.assertEqual(num_files_for_size(' 1g '), 10)


if __name__ == '__main__':
  unittest.main()
