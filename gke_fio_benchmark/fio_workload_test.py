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

"""This file defines unit tests for functionalities in fio_workload.py"""

import json
import os
import tempfile
import unittest

from gke_fio_benchmark import constants
from gke_fio_benchmark.fio_workload import BenchmarkParameters
from gke_fio_benchmark.fio_workload import SweepConfigError
from gke_fio_benchmark.fio_workload import adjusted_block_size
from gke_fio_benchmark.fio_workload import parse_mount_options
from gke_fio_benchmark.fio_workload import parse_sweep_config_file
from gke_fio_benchmark.fio_workload import sweep_config_from_dict
from gke_fio_benchmark.fio_workload import validate_sweep_config


def _params(**kwargs) -> BenchmarkParameters:
  values = dict(
      file_count=10,
      file_size='1G',
      iterations=2,
      io_mode='read',
      block_size='1M',
      mount_options='implicit-dirs',
  )
  values.update(kwargs)
  return BenchmarkParameters(**values)


class BenchmarkParametersTest(unittest.TestCase):

  def test_block_size_kept_when_smaller_than_file(self):
    self.assertEqual(_params(file_size='1G', block_size='1M').block_size, '1M')

  def test_block_size_clamped_to_file_size(self):
    self.assertEqual(
        _params(file_size='64K', block_size='1M').block_size, '64K'
    )
    self.assertEqual(
        _params(file_size='256k', block_size='1m').block_size, '256k'
    )
    self.assertEqual(_params(file_size='1G', block_size='2T').block_size, '1G')

  def test_adjusted_block_size_mixed_units_and_case(self):
    self.assertEqual(adjusted_block_size('1m', '4K'), '4K')
    self.assertEqual(adjusted_block_size('4K', '1m'), '4K')
    self.assertEqual(adjusted_block_size('1t', '2G'), '2G')
    self.assertEqual(adjusted_block_size('1g', '1G'), '1G')

  def test_invalid_parameters(self):
    for kwargs in [
        {'file_count': 0},
        {'iterations': 0},
        {'io_mode': 'append'},
        {'file_size': '1X'},
    ]:
      with self.subTest(kwargs=kwargs):
        with self.assertRaises(ValueError):
          _params(**kwargs)

  def test_mount_options_are_ordered_tuple(self):
    params = _params(
        mount_options='implicit-dirs, metadata-cache:ttl-secs:60,,log-severity=info'
    )
    self.assertEqual(
        params.mount_options,
        ('implicit-dirs', 'metadata-cache:ttl-secs:60', 'log-severity=info'),
    )
    self.assertEqual(
        params.mount_options_string(),
        'implicit-dirs,metadata-cache:ttl-secs:60,log-severity=info',
    )

  def test_parse_mount_options_from_list(self):
    self.assertEqual(
        parse_mount_options(['implicit-dirs', ' ', 'client-protocol=grpc']),
        ('implicit-dirs', 'client-protocol=grpc'),
    )


class SweepConfigTest(unittest.TestCase):

  def test_defaults(self):
    config = sweep_config_from_dict({}, 'empty')
    self.assertEqual(config.file_sizes, constants.DEFAULT_FILE_SIZES)
    self.assertEqual(config.iterations, constants.DEFAULT_ITERATIONS)
    self.assertEqual(config.mode, constants.DEFAULT_MODE)
    self.assertFalse(config.parallel)
    self.assertEqual(config.max_parallel_jobs, 3)

  def test_valid_config(self):
    config = sweep_config_from_dict(
        {
            'fileSizes': ['64K', '1G'],
            'iterations': 3,
            'mode': 'randread',
            'blockSize': '4K',
            'mountOptions': ['implicit-dirs', 'log-severity=trace'],
            'parallel': True,
            'maxParallelJobs': 2,
        },
        'valid',
    )
    self.assertEqual(config.file_sizes, ['64K', '1G'])
    self.assertEqual(config.iterations, 3)
    self.assertEqual(config.mode, 'randread')
    self.assertEqual(config.block_size, '4K')
    self.assertEqual(
        config.mount_options, ('implicit-dirs', 'log-severity=trace')
    )
    self.assertTrue(config.parallel)
    self.assertEqual(config.max_parallel_jobs, 2)

  def test_invalid_configs(self):
    for name, sweepConfig in {
        'not-a-dict': [],
        'file-sizes-not-list': {'fileSizes': '64K'},
        'file-sizes-empty': {'fileSizes': []},
        'file-size-with-space': {'fileSizes': ['64 K']},
        'file-size-unsupported': {'fileSizes': ['64X']},
        'iterations-str': {'iterations': '2'},
        'iterations-bool': {'iterations': True},
        'iterations-zero': {'iterations': 0},
        'mode-unsupported': {'mode': 'append'},
        'block-size-unsupported': {'blockSize': 'big'},
        'parallel-not-bool': {'parallel': 'yes'},
        'max-parallel-jobs-negative': {'maxParallelJobs': -1},
    }.items():
      with self.subTest(name=name):
        with self.assertRaises(SweepConfigError):
          validate_sweep_config(sweepConfig, name)

  def test_parse_sweep_config_file(self):
    with tempfile.TemporaryDirectory() as tmp_dir:
      path = os.path.join(tmp_dir, 'sweep.json')
      with open(path, 'w') as f:
        json.dump(
            {'TestConfig': {'sweepConfig': {'fileSizes': ['1M'], 'mode': 'write'}}},
            f,
        )
      config = parse_sweep_config_file(path)
    self.assertEqual(config.file_sizes, ['1M'])
    self.assertEqual(config.mode, 'write')

  def test_parse_sweep_config_file_missing_section(self):
    with tempfile.TemporaryDirectory() as tmp_dir:
      path = os.path.join(tmp_dir, 'sweep.json')
      with open(path, 'w') as f:
        json.dump({'TestConfig': {}}, f)
      with self.assertRaises(SweepConfigError):
        parse_sweep_config_file(path)


if __name__ == '__main__':
  unittest.main()
