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

"""Turns the log text of a benchmark pod into a BenchmarkResult."""

from dataclasses import dataclass
import enum
import json
import logging
import re
from typing import Optional

from gke_fio_benchmark import constants
from gke_fio_benchmark.resource_monitor import ResourcePeak
from gke_fio_benchmark.resource_monitor import ResourcePeaks
from gke_fio_benchmark.resource_monitor import SCOPE_POD
from gke_fio_benchmark.resource_monitor import SCOPE_SIDECAR
from gke_fio_benchmark.resource_monitor import SCOPE_WORKLOAD

COMPLETION_MARKERS = ('Test completed!', 'FIO Benchmark Complete')
SUMMARY_JSON_PREFIX = 'FIO_SUMMARY_JSON:'

_NUMBER = r'([0-9]*\.?[0-9]+(?:[eE][-+]?[0-9]+)?)'
_AVERAGE_IOPS_REGEX = re.compile(
    r'^\s*(?:\[\w+\]\s*)?Average IOPS:\s*' + _NUMBER, re.M
)
_AVERAGE_BANDWIDTH_REGEX = re.compile(
    r'^\s*(?:\[\w+\]\s*)?Average Bandwidth:\s*' + _NUMBER + r'\s*MB/s', re.M
)
_SUMMARY_JSON_REGEX = re.compile(
    r'^\s*' + re.escape(SUMMARY_JSON_PREFIX) + r'\s*(\{.*\})\s*$', re.M
)

# Tried in order, the first match wins.
_JOB_ID_REGEXES = (
    re.compile(r'^\s*(?:\[\w+\]\s*)?GKE Job ID:\s*(\S+)', re.M),
    re.compile(r'^\s*(?:\[\w+\]\s*)?Job ID:\s*(\S+)', re.M),
    re.compile(r'Results \(Job ID:\s*([^,)\s]+)'),
)

# Resource usage blocks of single-job transcripts, e.g.
#   Overall Pod:
#     Max CPU: 350m
#     Max Memory: 900Mi
_PEAK_BLOCK_HEADERS = {
    'Overall Pod:': SCOPE_POD,
    'FIO Container:': SCOPE_WORKLOAD,
    'GCS FUSE Sidecar Container:': SCOPE_SIDECAR,
}
_MAX_CPU_REGEX = re.compile(r'^\s*Max CPU:\s*([0-9]+)m?\s*$')
_MAX_MEMORY_REGEX = re.compile(r'^\s*Max Memory:\s*([0-9]+)(?:Mi)?\s*$')


class Status(enum.Enum):
  SUCCESS = 'Success'
  FAILED = 'Failed'


@dataclass(frozen=True)
class BenchmarkResult:
  """Outcome of one benchmark job.

  iops and bandwidth_mbs are None when no value could be extracted.
  """

  job_id: str
  size_class: str
  file_count: int
  iops: Optional[float]
  bandwidth_mbs: Optional[float]
  peaks: ResourcePeaks
  status: Status

  @property
  def succeeded(self) -> bool:
    return self.status == Status.SUCCESS


def has_completion_marker(log_text: str) -> bool:
  return any(marker in log_text for marker in COMPLETION_MARKERS)


def parse_summary_json(log_text: str) -> Optional[dict]:
  """Returns the last FIO_SUMMARY_JSON object in the logs, if any."""
  for match in reversed(_SUMMARY_JSON_REGEX.findall(log_text)):
    try:
      summary = json.loads(match)
    except json.JSONDecodeError:
      logging.debug('Ignoring malformed summary line: %s', match)
      continue
    if isinstance(summary, dict):
      return summary
  return None


def _last_float(regex, log_text: str) -> Optional[float]:
  matches = regex.findall(log_text)
  if not matches:
    return None
  return float(matches[-1])


def parse_average_iops(log_text: str) -> Optional[float]:
  return _last_float(_AVERAGE_IOPS_REGEX, log_text)


def parse_average_bandwidth(log_text: str) -> Optional[float]:
  return _last_float(_AVERAGE_BANDWIDTH_REGEX, log_text)


def _summary_float(summary: Optional[dict], key: str) -> Optional[float]:
  if not summary or summary.get(key) is None:
    return None
  try:
    value = float(summary[key])
  except (TypeError, ValueError):
    return None
  return value if value >= 0 else None


def parse_job_id(log_text: str) -> str:
  """Returns the job id from the logs, or UNKNOWN."""
  for regex in _JOB_ID_REGEXES:
    match = regex.search(log_text)
    if match:
      return match.group(1)
  return constants.UNKNOWN_JOB_ID


def parse_resource_peaks(log_text: str) -> ResourcePeaks:
  """Parses the 'Max CPU'/'Max Memory' lines of a resource usage block."""
  peaks = {}
  scope = None
  for line in log_text.splitlines():
    stripped = line.strip()
    if stripped in _PEAK_BLOCK_HEADERS:
      scope = _PEAK_BLOCK_HEADERS[stripped]
      peaks.setdefault(scope, ResourcePeak())
      continue
    if scope is None:
      continue
    cpu_match = _MAX_CPU_REGEX.match(line)
    memory_match = _MAX_MEMORY_REGEX.match(line)
    if cpu_match:
      peaks[scope].max_cpu_millicores = int(cpu_match.group(1))
      peaks[scope].sample_count = 1
    elif memory_match:
      peaks[scope].max_memory_mib = int(memory_match.group(1))
      peaks[scope].sample_count = 1
    else:
      scope = None
  result = ResourcePeaks(peaks)
  result.freeze()
  return result


def extract_result(
    log_text: str,
    peaks: Optional[ResourcePeaks],
    size_class: str,
    file_count: int,
    job_succeeded: bool = True,
) -> BenchmarkResult:
  """Builds the BenchmarkResult of a job from its logs.

  Args:
    log_text: Full log text of the job's pod.
    peaks: Peaks observed by the ResourceMonitor. None to parse them from a
      resource usage block in log_text instead.
    size_class: File-size class of the job e.g. '1G'.
    file_count: Number of files the job used.
    job_succeeded: False if the Job itself was reported as failed.

  Returns:
    A BenchmarkResult. The status is Failed when the job did not succeed or
    the logs have no completion marker, in which case iops and bandwidth are
    None.
  """
  if peaks is None:
    peaks = parse_resource_peaks(log_text)
  job_id = parse_job_id(log_text)

  if not job_succeeded or not has_completion_marker(log_text):
    logging.warning(
        'Job %s for file size %s did not complete successfully',
        job_id,
        size_class,
    )
    return BenchmarkResult(
        job_id=job_id,
        size_class=size_class,
        file_count=file_count,
        iops=None,
        bandwidth_mbs=None,
        peaks=peaks,
        status=Status.FAILED,
    )

  summary = parse_summary_json(log_text)
  iops = _summary_float(summary, 'avg_iops')
  if iops is None:
    iops = parse_average_iops(log_text)
  bandwidth = _summary_float(summary, 'avg_bandwidth_mbs')
  if bandwidth is None:
    bandwidth = parse_average_bandwidth(log_text)
  if iops is None or bandwidth is None:
    logging.warning(
        'Job %s completed without IOPS or bandwidth in its logs', job_id
    )
  return BenchmarkResult(
      job_id=job_id,
      size_class=size_class,
      file_count=file_count,
      iops=iops,
      bandwidth_mbs=bandwidth,
      peaks=peaks,
      status=Status.SUCCESS,
  )


def failed_result(
    job_id: str,
    size_class: str,
    file_count: int,
    peaks: Optional[ResourcePeaks] = None,
) -> BenchmarkResult:
  if peaks is None:
    peaks = ResourcePeaks()
    peaks.freeze()
  return BenchmarkResult(
      job_id=job_id or constants.UNKNOWN_JOB_ID,
      size_class=size_class,
      file_count=file_count,
      iops=None,
      bandwidth_mbs=None,
      peaks=peaks,
      status=Status.FAILED,
  )
