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

"""Common utilities for running FIO benchmarks on GKE."""

import asyncio
import datetime
import logging
import re
import shlex
import subprocess
from typing import List, Optional, Tuple

_SIZE_REGEX = re.compile(r'^\s*([0-9]*\.?[0-9]+)\s*([kmgt]?)(i?b)?\s*$', re.I)
_UNIT_MULTIPLIERS = {
    '': 1,
    'k': 1024,
    'm': 1024**2,
    'g': 1024**3,
    't': 1024**4,
}


class InvalidSizeError(ValueError):
  """Raised for a size string which is not of the form <number>[K|M|G|T][B]."""


def convert_size_to_bytes(size: str) -> int:
  """Converts a size string like '64K', '1m', '10GB' or '512' to bytes.

  Units are binary multiples and case-insensitive. A bare number is taken as
  bytes.
  """
  match = _SIZE_REGEX.match(str(size))
  if not match:
    raise InvalidSizeError(f'Unsupported size: "{size}"')
  number, unit = match.group(1), match.group(2).lower()
  return int(float(number) * _UNIT_MULTIPLIERS[unit])


def unix_to_timestamp(unix_timestamp: int) -> str:
  # Convert Unix timestamp (in seconds) to a datetime object (aware of UTC)
  datetime_utc = datetime.datetime.fromtimestamp(
      unix_timestamp, tz=datetime.timezone.utc
  )
  return datetime_utc.strftime('%Y-%m-%d %H:%M:%S UTC')


async def run_command_async(
    command_list: List[str], check: bool = True, cwd: Optional[str] = None
) -> Tuple[str, str, int]:
  """Runs a command asynchronously, preventing command injection.

  Args:
      command_list: A list of strings representing the command and its
        arguments.
      check: If True, raises CalledProcessError if the command returns a
        non-zero exit code.
      cwd: The working directory to run the command in.

  Returns:
      A tuple containing (stdout, stderr, returncode).

  Raises:
      subprocess.CalledProcessError: If the command fails and check is True.
  """
  command_str = ' '.join(map(shlex.quote, command_list))
  logging.debug('Executing command: %s', command_str)
  process = await asyncio.create_subprocess_exec(
      *command_list,
      stdout=asyncio.subprocess.PIPE,
      stderr=asyncio.subprocess.PIPE,
      cwd=cwd,
  )
  stdout, stderr = await process.communicate()
  stdout_decoded = stdout.decode(errors='replace').strip()
  stderr_decoded = stderr.decode(errors='replace').strip()

  if check and process.returncode != 0:
    raise subprocess.CalledProcessError(
        process.returncode, command_str, stdout_decoded, stderr_decoded
    )

  if stdout_decoded:
    logging.debug(stdout_decoded)
  if stderr_decoded:
    logging.debug(stderr_decoded)
  return stdout_decoded, stderr_decoded, process.returncode


async def check_prerequisites() -> bool:
  """Checks that gcloud and kubectl are installed.

  Returns:
      True if both tools could be invoked, False otherwise.
  """
  tools = {
      'gcloud': ['gcloud', '--version'],
      'kubectl': ['kubectl', 'version', '--client=true'],
  }
  all_found = True
  for tool, version_cmd in tools.items():
    try:
      await run_command_async(version_cmd)
    except (FileNotFoundError, subprocess.CalledProcessError):
      logging.error('%s not found', tool)
      all_found = False
  return all_found


async def setup_cluster_credentials(
    project_id: str, cluster_name: str, cluster_region: str
):
  """Points gcloud at the project and fetches kubectl credentials."""
  logging.info('Setting up GKE connection...')
  await run_command_async(['gcloud', 'config', 'set', 'project', project_id])
  await run_command_async([
      'gcloud',
      'container',
      'clusters',
      'get-credentials',
      cluster_name,
      f'--region={cluster_region}',
      f'--project={project_id}',
  ])
