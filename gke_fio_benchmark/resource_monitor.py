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

"""Tracks the peak CPU and memory usage of a benchmark pod while it runs.

The monitor is a small state machine running as its own asyncio task:

  WAITING_FOR_RUNNING -> SAMPLING -> STOPPED

It polls `kubectl top` and keeps running maxima for the whole pod, the fio
container and the gcsfuse sidecar container. Stopping it freezes the maxima.
"""

import asyncio
import copy
from dataclasses import dataclass
import enum
import logging
import subprocess
import time
from typing import Dict, Optional

from gke_fio_benchmark import constants
from gke_fio_benchmark import kubectl as kubectl_lib

SCOPE_POD = 'pod'
SCOPE_WORKLOAD = 'workload'
SCOPE_SIDECAR = 'sidecar'
SCOPES = (SCOPE_POD, SCOPE_WORKLOAD, SCOPE_SIDECAR)

CONTAINER_SCOPES = {
    constants.WORKLOAD_CONTAINER_NAME: SCOPE_WORKLOAD,
    constants.GCSFUSE_CONTAINER_NAME: SCOPE_SIDECAR,
}

_TERMINAL_POD_PHASES = ('Succeeded', 'Failed')


@dataclass(frozen=True)
class ResourceSample:
  """One `kubectl top` reading of a pod or one of its containers."""

  timestamp: float
  cpu_millicores: int
  memory_mib: int
  scope: str


@dataclass
class ResourcePeak:
  max_cpu_millicores: int = 0
  max_memory_mib: int = 0
  sample_count: int = 0


class ResourcePeaks:
  """Running maxima per scope. Updates after freeze() are ignored."""

  def __init__(self, peaks: Optional[Dict[str, ResourcePeak]] = None):
    self._peaks = {scope: ResourcePeak() for scope in SCOPES}
    if peaks:
      self._peaks.update(copy.deepcopy(peaks))
    self._frozen = False

  @property
  def frozen(self) -> bool:
    return self._frozen

  @property
  def pod(self) -> ResourcePeak:
    return self._peaks[SCOPE_POD]

  @property
  def workload(self) -> ResourcePeak:
    return self._peaks[SCOPE_WORKLOAD]

  @property
  def sidecar(self) -> ResourcePeak:
    return self._peaks[SCOPE_SIDECAR]

  def get(self, scope: str) -> ResourcePeak:
    return self._peaks[scope]

  @property
  def sample_count(self) -> int:
    return sum(peak.sample_count for peak in self._peaks.values())

  def update(self, sample: ResourceSample) -> bool:
    """Folds the sample into the maxima of its scope.

    Returns:
      False if the peaks are frozen or the scope is not tracked.
    """
    if self._frozen or sample.scope not in self._peaks:
      return False
    peak = self._peaks[sample.scope]
    peak.max_cpu_millicores = max(
        peak.max_cpu_millicores, sample.cpu_millicores
    )
    peak.max_memory_mib = max(peak.max_memory_mib, sample.memory_mib)
    peak.sample_count += 1
    return True

  def freeze(self):
    self._frozen = True

  def with_scope(
      self, scope: str, max_cpu_millicores: int, max_memory_mib: int
  ) -> 'ResourcePeaks':
    """Returns a frozen copy with the given scope's maxima replaced."""
    peaks = ResourcePeaks(self._peaks)
    peaks._peaks[scope] = ResourcePeak(
        max_cpu_millicores=max_cpu_millicores,
        max_memory_mib=max_memory_mib,
        sample_count=self._peaks[scope].sample_count,
    )
    peaks.freeze()
    return peaks

  def __eq__(self, other):
    if not isinstance(other, ResourcePeaks):
      return NotImplemented
    return self._peaks == other._peaks

  def __repr__(self):
    return f'ResourcePeaks({self._peaks!r}, frozen={self._frozen})'


class MonitorState(enum.Enum):
  WAITING_FOR_RUNNING = 'WaitingForRunning'
  SAMPLING = 'Sampling'
  STOPPED = 'Stopped'


class ResourceMonitor:
  """Samples the resource usage of one pod until it stops running."""

  def __init__(
      self,
      kubectl: kubectl_lib.Kubectl,
      pod_name: str,
      job_name: str,
      poll_interval: float = constants.DEFAULT_MONITOR_INTERVAL,
      running_timeout: float = constants.DEFAULT_MONITOR_RUNNING_TIMEOUT,
      running_poll_interval: float = constants.DEFAULT_POD_POLL_INTERVAL,
  ):
    self.kubectl = kubectl
    self.pod_name = pod_name
    self.job_name = job_name
    self.poll_interval = poll_interval
    self.running_timeout = running_timeout
    self.running_poll_interval = running_poll_interval
    self.state = MonitorState.WAITING_FOR_RUNNING
    self.peaks = ResourcePeaks()
    self._task = None

  async def _wait_for_running(self) -> bool:
    deadline = time.monotonic() + self.running_timeout
    while True:
      phase = await self.kubectl.get_pod_phase(self.pod_name)
      if phase == kubectl_lib.POD_PHASE_RUNNING:
        return True
      if phase in _TERMINAL_POD_PHASES:
        logging.warning(
            'Pod %s reached phase %s before monitoring started',
            self.pod_name,
            phase,
        )
        return False
      if time.monotonic() >= deadline:
        logging.warning(
            'Pod %s never reached Running state within %ss',
            self.pod_name,
            self.running_timeout,
        )
        return False
      await asyncio.sleep(self.running_poll_interval)

  async def sample_once(self):
    """Takes one pod-level and one per-container reading."""
    now = time.time()
    try:
      pod_usage = await self.kubectl.top_pod(self.pod_name)
      container_usage = await self.kubectl.top_pod_containers(self.pod_name)
    except (subprocess.CalledProcessError, OSError) as e:
      logging.debug('Failed to read metrics of pod %s: %s', self.pod_name, e)
      return
    if pod_usage is not None:
      self.peaks.update(ResourceSample(now, *pod_usage, SCOPE_POD))
    for container, usage in container_usage.items():
      scope = CONTAINER_SCOPES.get(container)
      if scope is None:
        continue
      self.peaks.update(ResourceSample(now, *usage, scope))

  async def _sample_while_running(self):
    while True:
      phase = await self.kubectl.get_pod_phase(self.pod_name)
      if phase != kubectl_lib.POD_PHASE_RUNNING:
        logging.info(
            'Pod %s status changed to: %s, stopping resource monitoring',
            self.pod_name,
            phase,
        )
        return
      await self.sample_once()
      await asyncio.sleep(self.poll_interval)

  def _finish(self):
    if self.state == MonitorState.STOPPED:
      return
    self.state = MonitorState.STOPPED
    self.peaks.freeze()
    if self.peaks.sample_count == 0:
      logging.warning(
          'No resource samples were collected for Job ID: %s, Pod: %s',
          self.job_name,
          self.pod_name,
      )
    logging.info(
        'Resource monitoring completed for Job ID: %s. Overall Pod - Max CPU:'
        ' %sm, Max Memory: %sMi; FIO Container - Max CPU: %sm, Max Memory:'
        ' %sMi; GCS FUSE Container - Max CPU: %sm, Max Memory: %sMi',
        self.job_name,
        self.peaks.pod.max_cpu_millicores,
        self.peaks.pod.max_memory_mib,
        self.peaks.workload.max_cpu_millicores,
        self.peaks.workload.max_memory_mib,
        self.peaks.sidecar.max_cpu_millicores,
        self.peaks.sidecar.max_memory_mib,
    )

  async def run(self) -> ResourcePeaks:
    logging.info(
        'Starting resource monitoring for Job ID: %s, Pod: %s',
        self.job_name,
        self.pod_name,
    )
    try:
      if await self._wait_for_running():
        self.state = MonitorState.SAMPLING
        await self._sample_while_running()
    finally:
      self._finish()
    return self.peaks

  def start(self) -> asyncio.Task:
    self._task = asyncio.create_task(self.run())
    return self._task

  async def stop(self) -> ResourcePeaks:
    """Cancels the monitoring task and returns the frozen peaks."""
    if self._task is not None:
      if not self._task.done():
        self._task.cancel()
      results = await asyncio.gather(self._task, return_exceptions=True)
      error = results[0]
      if isinstance(error, Exception):
        logging.warning(
            'Resource monitoring of pod %s failed: %s', self.pod_name, error
        )
    self._finish()
    return self.peaks
