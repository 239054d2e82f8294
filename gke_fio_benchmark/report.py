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

"""Renders sweep results as a console table and as a CSV file."""

import csv
import datetime
import os
from typing import List, Optional, Sequence

from prettytable import PrettyTable

from gke_fio_benchmark import constants
from gke_fio_benchmark.result_extractor import BenchmarkResult

CSV_HEADER = [
    'File_Size',
    'Job_ID',
    'IOPS',
    'Bandwidth_MBps',
    'Pod_Max_CPU_m',
    'Pod_Max_Memory_MiB',
    'FIO_CPU_m',
    'FIO_Memory_MiB',
    'GCS_FUSE_CPU_m',
    'GCS_FUSE_Memory_MiB',
    'Num_Files',
    'Status',
]

_TABLE_COLUMNS = [
    'File Size',
    'Job ID',
    'IOPS',
    'BW (MB/s)',
    'Pod CPU',
    'Pod Mem',
    'FIO CPU',
    'FIO Mem',
    'gcsfuse CPU',
    'gcsfuse mem',
]


def _format_metric(result: BenchmarkResult, value: Optional[float]) -> str:
  if not result.succeeded:
    return constants.FAILED
  if value is None:
    return constants.NOT_AVAILABLE
  return f'{value:.2f}'


def _peak_values(result: BenchmarkResult) -> List[str]:
  """Returns pod, fio and sidecar cpu/memory peaks, FAILED for failed rows."""
  if not result.succeeded:
    return [constants.FAILED] * 6
  peaks = result.peaks
  return [
      str(value)
      for peak in (peaks.pod, peaks.workload, peaks.sidecar)
      for value in (peak.max_cpu_millicores, peak.max_memory_mib)
  ]


def result_to_csv_row(result: BenchmarkResult) -> List[str]:
  return [
      result.size_class,
      result.job_id,
      _format_metric(result, result.iops),
      _format_metric(result, result.bandwidth_mbs),
      *_peak_values(result),
      str(result.file_count),
      result.status.value,
  ]


def build_table(results: Sequence[BenchmarkResult]) -> PrettyTable:
  """Returns a PrettyTable with one row per result."""
  table = PrettyTable(_TABLE_COLUMNS)
  table.align = 'l'
  for result in results:
    peaks = _peak_values(result)
    if result.succeeded:
      peaks = [
          f'{value}{unit}' for value, unit in zip(peaks, ['m', 'Mi'] * 3)
      ]
    table.add_row([
        result.size_class,
        result.job_id,
        _format_metric(result, result.iops),
        _format_metric(result, result.bandwidth_mbs),
        *peaks,
    ])
  return table


def format_table(results: Sequence[BenchmarkResult]) -> str:
  """Returns the summary table of the results under a banner."""
  table = build_table(results).get_string()
  line_width = len(table.splitlines()[0])
  return '\n'.join(
      ['=' * line_width, 'FINAL RESULTS SUMMARY', '=' * line_width, table]
  )


def default_csv_filename(now: Optional[datetime.datetime] = None) -> str:
  if now is None:
    now = datetime.datetime.now()
  return now.strftime('fio_results_%Y%m%d_%H%M%S.csv')


def write_csv(
    results: Sequence[BenchmarkResult],
    output_dir: str = '.',
    filename: Optional[str] = None,
) -> str:
  """Writes one CSV row per result and returns the path of the file."""
  os.makedirs(output_dir, exist_ok=True)
  path = os.path.join(output_dir, filename or default_csv_filename())
  with open(path, 'w', newline='') as f:
    writer = csv.writer(f)
    writer.writerow(CSV_HEADER)
    for result in results:
      writer.writerow(result_to_csv_row(result))
  return path
