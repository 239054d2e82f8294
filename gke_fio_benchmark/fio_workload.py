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

"""This file defines the parameters of a FIO benchmark job and provides

utility for parsing a json sweep-config file into them.
"""

from dataclasses import dataclass, field
import json
import logging
from typing import List, Sequence, Tuple, Union

from gke_fio_benchmark import constants
from gke_fio_benchmark.utils import convert_size_to_bytes

SUPPORTED_IO_MODES = ('read', 'write', 'randread', 'randwrite', 'rw', 'randrw')


class SweepConfigError(Exception):
  """Raised for an invalid sweep configuration."""


def parse_mount_options(mountOptions: Union[str, Sequence[str]]) -> Tuple[str]:
  """Returns the ordered mount options as a tuple.

  mountOptions is either a single comma-separated string e.g.
  "implicit-dirs,metadata-cache:ttl-secs:60" or a list of such entries. Empty
  entries are dropped.
  """
  if isinstance(mountOptions, str):
    mountOptions = mountOptions.split(',')
  return tuple(
      option.strip() for option in mountOptions if option and option.strip()
  )


def adjusted_block_size(file_size: str, block_size: str) -> str:
  """Returns file_size if block_size is bigger than it, else block_size."""
  if convert_size_to_bytes(block_size) > convert_size_to_bytes(file_size):
    return file_size
  return block_size


@dataclass(frozen=True)
class BenchmarkParameters:
  """Parameters of a single FIO benchmark job.

  file_count: nrfiles for the fio job. Must be greater than 0.
  file_size: fio filesize e.g. '256K', '1G'.
  iterations: Number of fio runs inside the job. Must be greater than 0.
  io_mode: fio rw value, one of SUPPORTED_IO_MODES.
  block_size: fio bs e.g. '1M'. Clamped to file_size if bigger than it.
  mount_options: ordered gcsfuse mount options, each of the form
    "<flag>[=<value>]" or "<config>[:<subconfig>[...]]:<value>".
  """

  file_count: int
  file_size: str
  iterations: int
  io_mode: str
  block_size: str
  mount_options: Tuple[str] = field(default_factory=tuple)

  def __post_init__(self):
    if not isinstance(self.file_count, int) or self.file_count <= 0:
      raise ValueError(f'file_count must be > 0, got {self.file_count}')
    if not isinstance(self.iterations, int) or self.iterations <= 0:
      raise ValueError(f'iterations must be > 0, got {self.iterations}')
    if self.io_mode not in SUPPORTED_IO_MODES:
      raise ValueError(
          f'Unsupported io_mode "{self.io_mode}", expected one of'
          f' {SUPPORTED_IO_MODES}'
      )
    block_size = adjusted_block_size(self.file_size, self.block_size)
    if block_size != self.block_size:
      logging.info(
          'Block size adjusted from %s to %s (file size limit)',
          self.block_size,
          block_size,
      )
      object.__setattr__(self, 'block_size', block_size)
    object.__setattr__(
        self, 'mount_options', parse_mount_options(self.mount_options)
    )

  def mount_options_string(self) -> str:
    return ','.join(self.mount_options)


@dataclass(frozen=True)
class SweepConfig:
  """Settings of a multi file-size sweep."""

  file_sizes: List[str] = field(
      default_factory=lambda: list(constants.DEFAULT_FILE_SIZES)
  )
  iterations: int = constants.DEFAULT_ITERATIONS
  mode: str = constants.DEFAULT_MODE
  block_size: str = constants.DEFAULT_BLOCK_SIZE
  mount_options: Tuple[str] = parse_mount_options(
      constants.DEFAULT_MOUNT_OPTIONS
  )
  parallel: bool = False
  max_parallel_jobs: int = constants.DEFAULT_MAX_PARALLEL_JOBS


def validate_sweep_config(sweepConfig: dict, name: str):
  """Validates the given json sweep-config object.

  Raises:
    SweepConfigError: if a key has the wrong type or an unsupported value.
  """
  if not isinstance(sweepConfig, dict):
    raise SweepConfigError(f'{name} is of type {type(sweepConfig)}, not dict')
  for attribute, expectedType in {
      'fileSizes': list,
      'iterations': int,
      'mode': str,
      'blockSize': str,
      'mountOptions': (str, list),
      'parallel': bool,
      'maxParallelJobs': int,
  }.items():
    if attribute not in sweepConfig:
      continue
    value = sweepConfig[attribute]
    # bool is a subclass of int, so rule it out for the int fields.
    if not isinstance(value, expectedType) or (
        expectedType is int and isinstance(value, bool)
    ):
      raise SweepConfigError(
          f"In {name}, '{attribute}' is of type {type(value)}, expected:"
          f' {expectedType}'
      )

  for fileSize in sweepConfig.get('fileSizes', []):
    if not isinstance(fileSize, str) or ' ' in fileSize.strip():
      raise SweepConfigError(
          f"In {name}, fileSizes has unsupported value '{fileSize}'"
      )
    try:
      convert_size_to_bytes(fileSize)
    except ValueError as e:
      raise SweepConfigError(f'In {name}, {e}') from e
  if 'fileSizes' in sweepConfig and not sweepConfig['fileSizes']:
    raise SweepConfigError(f'In {name}, fileSizes is empty')

  for attribute in ['iterations', 'maxParallelJobs']:
    if attribute in sweepConfig and sweepConfig[attribute] <= 0:
      raise SweepConfigError(
          f"In {name}, the value of '{attribute}' <= 0, expected: >0"
      )

  if 'mode' in sweepConfig and sweepConfig['mode'] not in SUPPORTED_IO_MODES:
    raise SweepConfigError(
        f"In {name}, mode is '{sweepConfig['mode']}' which is not a"
        f' supported value. Supported values are {SUPPORTED_IO_MODES}'
    )

  if 'blockSize' in sweepConfig:
    try:
      convert_size_to_bytes(sweepConfig['blockSize'])
    except ValueError as e:
      raise SweepConfigError(f'In {name}, {e}') from e


def sweep_config_from_dict(sweepConfig: dict, name: str) -> SweepConfig:
  validate_sweep_config(sweepConfig, name)
  defaults = SweepConfig()
  return SweepConfig(
      file_sizes=list(sweepConfig.get('fileSizes', defaults.file_sizes)),
      iterations=sweepConfig.get('iterations', defaults.iterations),
      mode=sweepConfig.get('mode', defaults.mode),
      block_size=sweepConfig.get('blockSize', defaults.block_size),
      mount_options=parse_mount_options(
          sweepConfig.get('mountOptions', defaults.mount_options)
      ),
      parallel=sweepConfig.get('parallel', defaults.parallel),
      max_parallel_jobs=sweepConfig.get(
          'maxParallelJobs', defaults.max_parallel_jobs
      ),
  )


def parse_sweep_config_file(sweepConfigFile: str) -> SweepConfig:
  """Parses the given json sweep configuration file.

  The expected layout is {"TestConfig": {"sweepConfig": {...}}}.
  """
  logging.info('Parsing %s for sweep configuration ...', sweepConfigFile)
  with open(sweepConfigFile) as f:
    file = json.load(f)
  try:
    sweepConfig = file['TestConfig']['sweepConfig']
  except (KeyError, TypeError) as e:
    raise SweepConfigError(
        f'{sweepConfigFile} does not have TestConfig.sweepConfig in it'
    ) from e
  return sweep_config_from_dict(sweepConfig, sweepConfigFile)
