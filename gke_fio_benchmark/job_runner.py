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

"""Runs a single FIO benchmark job on GKE from submission to cleanup.

For every job the runner:
1.  Renders the manifests to a temporary file and applies them.
2.  Waits for the job's pod to be created.
3.  Starts a ResourceMonitor task against the pod.
4.  Waits for the job to complete or fail.
5.  Waits a grace period, then stops the monitor and collects its peaks.
6.  Fetches the pod logs.
7.  Deletes the job, its ConfigMap and the manifest file.
Any failure turns into a Failed BenchmarkResult; cleanup always runs.
"""

import asyncio
import dataclasses
import logging
import os
import subprocess
import tempfile
import time
from typing import Callable, Optional

from gke_fio_benchmark import constants
from gke_fio_benchmark import job_spec
from gke_fio_benchmark import kubectl as kubectl_lib
from gke_fio_benchmark import result_extractor
from gke_fio_benchmark.cloud_monitoring import SidecarMetricsClient
from gke_fio_benchmark.fio_workload import BenchmarkParameters
from gke_fio_benchmark.resource_monitor import ResourceMonitor
from gke_fio_benchmark.resource_monitor import ResourcePeaks
from gke_fio_benchmark.resource_monitor import SCOPE_SIDECAR
from gke_fio_benchmark.result_extractor import BenchmarkResult


class JobRunnerError(Exception):
  """Base class of the errors which fail a single benchmark job."""


class SubmissionError(JobRunnerError):
  """Raised when the job manifests could not be applied."""


class SchedulingTimeoutError(JobRunnerError):
  """Raised when no pod shows up for the job in time."""


class CompletionTimeoutError(JobRunnerError):
  """Raised when the job neither completes nor fails in time."""


class JobRunner:
  """Runs benchmark jobs one at a time per call to run()."""

  def __init__(
      self,
      kubectl: kubectl_lib.Kubectl,
      builder: job_spec.JobSpecBuilder,
      work_dir: Optional[str] = None,
      job_timeout: float = constants.DEFAULT_JOB_TIMEOUT,
      pod_creation_timeout: float = constants.DEFAULT_POD_CREATION_TIMEOUT,
      pod_poll_interval: float = constants.DEFAULT_POD_POLL_INTERVAL,
      completion_poll_interval: float = (
          constants.DEFAULT_COMPLETION_POLL_INTERVAL
      ),
      monitor_interval: float = constants.DEFAULT_MONITOR_INTERVAL,
      monitor_running_timeout: float = (
          constants.DEFAULT_MONITOR_RUNNING_TIMEOUT
      ),
      monitor_grace: float = constants.DEFAULT_MONITOR_GRACE,
      sidecar_metrics: Optional[SidecarMetricsClient] = None,
      job_name_factory: Callable[[], str] = job_spec.new_job_name,
  ):
    self.kubectl = kubectl
    self.builder = builder
    self.work_dir = work_dir or tempfile.gettempdir()
    self.job_timeout = job_timeout
    self.pod_creation_timeout = pod_creation_timeout
    self.pod_poll_interval = pod_poll_interval
    self.completion_poll_interval = completion_poll_interval
    self.monitor_interval = monitor_interval
    self.monitor_running_timeout = monitor_running_timeout
    self.monitor_grace = monitor_grace
    self.sidecar_metrics = sidecar_metrics
    self.job_name_factory = job_name_factory

  def _write_manifest(self, spec: job_spec.JobSpec) -> str:
    manifest = spec.to_yaml()
    manifest_path = os.path.join(self.work_dir, f'{spec.job_name}.yaml')
    with open(manifest_path, 'w') as f:
      f.write(manifest)
    logging.debug(
        'Rendered manifest file %s with contents:\n%s', manifest_path, manifest
    )
    return manifest_path

  async def _submit(self, manifest_path: str, job_name: str):
    try:
      await self.kubectl.apply(manifest_path)
    except (subprocess.CalledProcessError, OSError) as e:
      raise SubmissionError(f'Failed to submit job {job_name}: {e}') from e

  async def _wait_for_pod(self, job_name: str) -> str:
    deadline = time.monotonic() + self.pod_creation_timeout
    while True:
      pod_name = await self.kubectl.get_pod_name_for_job(job_name)
      if pod_name:
        return pod_name
      if time.monotonic() >= deadline:
        raise SchedulingTimeoutError(
            f'No pod was created for job {job_name} within'
            f' {self.pod_creation_timeout}s'
        )
      await asyncio.sleep(self.pod_poll_interval)

  async def _wait_for_completion(self, job_name: str) -> str:
    deadline = time.monotonic() + self.job_timeout
    while True:
      condition = await self.kubectl.get_job_condition(job_name)
      if condition is not None:
        return condition
      if time.monotonic() >= deadline:
        raise CompletionTimeoutError(
            f'Job {job_name} did not finish within {self.job_timeout}s'
        )
      await asyncio.sleep(self.completion_poll_interval)

  async def _backfill_sidecar_peaks(
      self,
      peaks: ResourcePeaks,
      pod_name: str,
      start_epoch: int,
      end_epoch: int,
  ) -> ResourcePeaks:
    if self.sidecar_metrics is None or peaks.sidecar.sample_count > 0:
      return peaks
    peak = await self.sidecar_metrics.get_sidecar_peak_async(
        pod_name, start_epoch, end_epoch
    )
    if peak is None:
      return peaks
    logging.info(
        'Filled in sidecar peaks of pod %s from Cloud Monitoring: %sm, %sMi',
        pod_name,
        *peak,
    )
    return peaks.with_scope(SCOPE_SIDECAR, *peak)

  async def _fetch_logs(self, pod_name: str) -> str:
    try:
      return await self.kubectl.get_logs(pod_name)
    except (subprocess.CalledProcessError, OSError) as e:
      logging.warning('Failed to fetch logs of pod %s: %s', pod_name, e)
      return ''

  async def _cleanup(self, job_name: str, manifest_path: Optional[str]):
    logging.info('Cleaning up Job ID: %s', job_name)
    try:
      await self.kubectl.delete_job(job_name)
    except (subprocess.CalledProcessError, OSError) as e:
      logging.warning('Failed to delete job %s: %s', job_name, e)
    configmap_name = job_spec.configmap_name_for_job(job_name)
    try:
      await self.kubectl.delete_configmap(configmap_name)
    except (subprocess.CalledProcessError, OSError) as e:
      logging.warning('Failed to delete configmap %s: %s', configmap_name, e)
    if manifest_path:
      try:
        os.remove(manifest_path)
      except FileNotFoundError:
        pass

  async def run(
      self, params: BenchmarkParameters, size_class: str
  ) -> BenchmarkResult:
    """Runs one benchmark job and returns its result. Never raises."""
    job_name = self.job_name_factory()
    manifest_path = None
    monitor = None
    start_epoch = int(time.time())
    logging.info(
        'Starting FIO test for file size %s with %s files, %s iterations'
        ' (GKE Job ID: %s)',
        size_class,
        params.file_count,
        params.iterations,
        job_name,
    )
    try:
      spec = self.builder.build(params, job_name)
      manifest_path = self._write_manifest(spec)
      await self._submit(manifest_path, job_name)

      pod_name = await self._wait_for_pod(job_name)
      logging.info('Pod created: %s', pod_name)

      monitor = ResourceMonitor(
          self.kubectl,
          pod_name,
          job_name,
          poll_interval=self.monitor_interval,
          running_timeout=self.monitor_running_timeout,
          running_poll_interval=self.pod_poll_interval,
      )
      monitor.start()

      logging.info('Waiting for job to complete (Job ID: %s)...', job_name)
      condition = await self._wait_for_completion(job_name)
      logging.info('Job %s finished with condition %s', job_name, condition)

      # Let the monitor catch the last samples before stopping it.
      await asyncio.sleep(self.monitor_grace)
      peaks = await monitor.stop()
      peaks = await self._backfill_sidecar_peaks(
          peaks, pod_name, start_epoch, int(time.time())
      )

      log_text = await self._fetch_logs(pod_name)
      logging.debug('Logs of pod %s:\n%s', pod_name, log_text)
      result = result_extractor.extract_result(
          log_text,
          peaks,
          size_class,
          params.file_count,
          job_succeeded=condition == kubectl_lib.JOB_CONDITION_COMPLETE,
      )
      if result.job_id == constants.UNKNOWN_JOB_ID:
        result = dataclasses.replace(result, job_id=job_name)
      return result
    except Exception as e:
      logging.error(
          'FIO test for file size %s (Job ID: %s) failed: %s',
          size_class,
          job_name,
          e,
      )
      peaks = await monitor.stop() if monitor is not None else None
      return result_extractor.failed_result(
          job_name, size_class, params.file_count, peaks
      )
    finally:
      if monitor is not None:
        await monitor.stop()
      await self._cleanup(job_name, manifest_path)
