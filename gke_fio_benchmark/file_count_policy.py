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

"""Maps a file-size class to the number of files to benchmark with it."""

DEFAULT_NUM_FILES = 20

# Small files get many files for concurrency, huge files only a few.
_NUM_FILES_TIERS = (
    (('64K', '256K'), 400),
    (('1M', '4M'), 200),
    (('16M', '64M'), 50),
    (('256M', '512M'), 30),
    (('1G', '2G', '4G'), 10),
    (('10G', '20G'), 4),
)

NUM_FILES_FOR_SIZE = {
    size: num_files for sizes, num_files in _NUM_FILES_TIERS for size in sizes
}


def num_files_for_size(size_class: str) -> int:
  """Returns the number of files to create for the given file-size class.

  Unrecognized labels get DEFAULT_NUM_FILES.
  """
  return NUM_FILES_FOR_SIZE.get(
      str(size_class).strip().upper(), DEFAULT_NUM_FILES
  )
