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

"""Async wrappers over the kubectl calls made by the benchmark."""

import logging
import re
from typing import Dict, Optional, Tuple

from gke_fio_benchmark import constants
from gke_fio_benchmark import utils

POD_PHASE_RUNNING = 'Running'
POD_PHASE_UNKNOWN = 'Unknown'
JOB_CONDITION_COMPLETE = 'Complete'
JOB_CONDITION_FAILED = 'Failed'

_CPU_REGEX = re.compile(r'^([0-9]+)m?$')
_MEMORY_REGEX = re.compile(r'^([0-9]+)(?:Mi)?$')


def _parse_cpu_and_memory(cpu: str, memory: str) -> Optional[Tuple[int, int]]:
  cpu_match = _CPU_REGEX.match(cpu)
  memory_match = _MEMORY_REGEX.match(memory)
  if not cpu_match or not memory_match:
    return None
  return int(cpu_match.group(1)), int(memory_match.group(1))


def parse_top_pod_output(output: str) -> Optional[Tuple[int, int]]:
  """Parses `kubectl top pod <pod> --no-headers` output.

  Example input: "fio-test-1700000000-a1b2c3-xyz   250m   512Mi"

  Returns:
    (cpu millicores, memory MiB), or None if the output has no usable line.
  """
  for line in output.splitlines():
    parts = line.split()
    if len(parts) < 3:
      logging.debug('Skipping malformed kubectl top line: %r', line)
      continue
    parsed = _parse_cpu_and_memory(parts[1], parts[2])
    if parsed is None:
      logging.debug('Skipping non-numeric kubectl top line: %r', line)
      continue
    return parsed
  return None


def parse_top_containers_output(output: str) -> Dict[str, Tuple[int, int]]:
  """Parses `kubectl top pod <pod> --containers --no-headers` output.

  Example input:
    fio-test-1700000000-a1b2c3-xyz   fio-test              120m   300Mi
    fio-test-1700000000-a1b2c3-xyz   gke-gcsfuse-sidecar   800m   1200Mi

  Returns:
    Map from container name to (cpu millicores, memory MiB). Malformed lines
    are skipped.
  """
  containers = {}
  for line in output.splitlines():
    parts = line.split()
    if len(parts) < 4:
      logging.debug('Skipping malformed kubectl top line: %r', line)
      continue
    parsed = _parse_cpu_and_memory(parts[2], parts[3])
    if parsed is None:
      logging.debug('Skipping non-numeric kubectl top line: %r', line)
      continue
    containers[parts[1]] = parsed
  return containers


class Kubectl:
  """kubectl client bound to one namespace."""

  def __init__(self, namespace: str = 'default'):
    self.namespace = namespace

  async def _run(self, args, check: bool = True) -> Tuple[str, str, int]:
    return await utils.run_command_async(
        ['kubectl', f'--namespace={self.namespace}'] + list(args), check=check
    )

  async def apply(self, manifest_file: str) -> str:
    stdout, _, _ = await self._run(['apply', '-f', manifest_file])
    return stdout

  async def get_pod_name_for_job(self, job_name: str) -> Optional[str]:
    """Returns the name of the job's pod, or None if it is not created yet."""
    stdout, _, returncode = await self._run(
        [
            'get',
            'pods',
            '-l',
            f'job-name={job_name}',
            '-o',
            'jsonpath={.items[0].metadata.name}',
        ],
        check=False,
    )
    if returncode != 0 or not stdout:
      return None
    return stdout

  async def get_pod_phase(self, pod_name: str) -> str:
    stdout, _, returncode = await self._run(
        ['get', 'pod', pod_name, '-o', 'jsonpath={.status.phase}'], check=False
    )
    if returncode != 0 or not stdout:
      return POD_PHASE_UNKNOWN
    return stdout

  async def top_pod(self, pod_name: str) -> Optional[Tuple[int, int]]:
    stdout, _, returncode = await self._run(
        ['top', 'pod', pod_name, '--no-headers'], check=False
    )
    if returncode != 0:
      return None
    return parse_top_pod_output(stdout)

  async def top_pod_containers(
      self, pod_name: str
  ) -> Dict[str, Tuple[int, int]]:
    stdout, _, returncode = await self._run(
        ['top', 'pod', pod_name, '--containers', '--no-headers'], check=False
    )
    if returncode != 0:
      return {}
    return parse_top_containers_output(stdout)

  async def get_job_condition(self, job_name: str) -> Optional[str]:
    """Returns 'Complete' or 'Failed' once the job has finished, else None."""
    stdout, _, returncode = await self._run(
        [
            'get',
            'job',
            job_name,
            '-o',
            'jsonpath={.status.conditions[?(@.status=="True")].type}',
        ],
        check=False,
    )
    if returncode != 0:
      return None
    conditions = stdout.split()
    if JOB_CONDITION_FAILED in conditions:
      return JOB_CONDITION_FAILED
    if JOB_CONDITION_COMPLETE in conditions:
      return JOB_CONDITION_COMPLETE
    return None

  async def get_logs(self, pod_name: str) -> str:
    stdout, _, _ = await self._run(
        ['logs', pod_name, '-c', constants.WORKLOAD_CONTAINER_NAME]
    )
    return stdout

  async def delete_job(self, job_name: str):
    await self._run([
        'delete',
        'job',
        job_name,
        '--ignore-not-found',
        '--cascade=foreground',
    ])

  async def delete_configmap(self, configmap_name: str):
    await self._run(
        ['delete', 'configmap', configmap_name, '--ignore-not-found']
    )

  async def list_jobs(self, label_selector: str) -> str:
    stdout, _, _ = await self._run(
        ['get', 'jobs', '-l', label_selector, '-o', 'wide']
    )
    return stdout

  async def list_pods(self, label_selector: str) -> str:
    stdout, _, _ = await self._run(
        ['get', 'pods', '-l', label_selector, '-o', 'wide']
    )
    return stdout

  async def recent_events(self, limit: int = 10) -> str:
    stdout, _, _ = await self._run(
        ['get', 'events', '--sort-by=.metadata.creationTimestamp']
    )
    return '\n'.join(stdout.splitlines()[-limit:])

  async def latest_pod_name(self, label_selector: str) -> Optional[str]:
    stdout, _, returncode = await self._run(
        [
            'get',
            'pods',
            '-l',
            label_selector,
            '--sort-by=.metadata.creationTimestamp',
            '-o',
            'jsonpath={.items[-1:].metadata.name}',
        ],
        check=False,
    )
    if returncode != 0 or not stdout:
      return None
    return stdout

  async def delete_jobs_by_label(
      self, label_selector: str, field_selector: Optional[str] = None
  ) -> str:
    command = ['delete', 'jobs', '-l', label_selector, '--ignore-not-found']
    if field_selector:
      command.append(f'--field-selector={field_selector}')
    stdout, _, _ = await self._run(command)
    return stdout
