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

"""Runs a FIO benchmark job per file size, one by one or a few at a time."""

import asyncio
from dataclasses import dataclass
import logging
from typing import List, Optional

from gke_fio_benchmark import constants
from gke_fio_benchmark import file_count_policy
from gke_fio_benchmark import result_extractor
from gke_fio_benchmark.fio_workload import BenchmarkParameters, SweepConfig
from gke_fio_benchmark.job_runner import JobRunner
from gke_fio_benchmark.result_extractor import BenchmarkResult


@dataclass(frozen=True)
class SweepPoint:
  index: int
  size_class: str
  file_count: int
  params: BenchmarkParameters


def build_sweep_matrix(config: SweepConfig) -> List[SweepPoint]:
  """Returns one SweepPoint per file size of the config, in order."""
  points = []
  for index, size_class in enumerate(config.file_sizes):
    file_count = file_count_policy.num_files_for_size(size_class)
    points.append(
        SweepPoint(
            index=index,
            size_class=size_class,
            file_count=file_count,
            params=BenchmarkParameters(
                file_count=file_count,
                file_size=size_class,
                iterations=config.iterations,
                io_mode=config.mode,
                block_size=config.block_size,
                mount_options=config.mount_options,
            ),
        )
    )
  return points


class BenchmarkSweep:
  """Runs the points of a sweep matrix through a JobRunner.

  The returned results are in matrix order, one per point, failed points
  included.
  """

  def __init__(
      self,
      runner: JobRunner,
      pause_seconds: float = constants.DEFAULT_SEQUENTIAL_PAUSE,
      stagger_seconds: float = constants.DEFAULT_PARALLEL_STAGGER,
  ):
    self.runner = runner
    self.pause_seconds = pause_seconds
    self.stagger_seconds = stagger_seconds

  async def _run_point(self, point: SweepPoint) -> BenchmarkResult:
    logging.info(
        'Running benchmark %s: file size %s with %s files',
        point.index + 1,
        point.size_class,
        point.file_count,
    )
    try:
      return await self.runner.run(point.params, point.size_class)
    except Exception as e:
      logging.error(
          'Benchmark for file size %s failed: %s', point.size_class, e
      )
      return result_extractor.failed_result(
          constants.UNKNOWN_JOB_ID, point.size_class, point.file_count
      )

  async def run_sequential(
      self, points: List[SweepPoint]
  ) -> List[BenchmarkResult]:
    results = []
    for i, point in enumerate(points):
      results.append(await self._run_point(point))
      if i < len(points) - 1:
        logging.info('Waiting %ss before next test...', self.pause_seconds)
        await asyncio.sleep(self.pause_seconds)
    return results

  async def run_parallel(
      self, points: List[SweepPoint], max_parallel_jobs: int
  ) -> List[BenchmarkResult]:
    """Runs at most max_parallel_jobs points at once.

    A new point is launched as soon as any running one finishes.
    """
    if max_parallel_jobs <= 0:
      raise ValueError(
          f'max_parallel_jobs must be > 0, got {max_parallel_jobs}'
      )
    results: List[Optional[BenchmarkResult]] = [None] * len(points)
    in_flight = {}
    for slot, point in enumerate(points):
      if len(in_flight) >= max_parallel_jobs:
        logging.info(
            'Max parallel jobs (%s) reached, waiting for one to complete...',
            max_parallel_jobs,
        )
        await self._collect_first_completed(in_flight, results)
      in_flight[asyncio.create_task(self._run_point(point))] = slot
      logging.info(
          'Started job for file size %s (%s running)',
          point.size_class,
          len(in_flight),
      )
      if slot < len(points) - 1:
        await asyncio.sleep(self.stagger_seconds)
    while in_flight:
      await self._collect_first_completed(in_flight, results)
    return results

  async def _collect_first_completed(self, in_flight: dict, results: list):
    done, _ = await asyncio.wait(
        set(in_flight), return_when=asyncio.FIRST_COMPLETED
    )
    for task in done:
      results[in_flight.pop(task)] = task.result()

  async def run(
      self, config: SweepConfig, points: Optional[List[SweepPoint]] = None
  ) -> List[BenchmarkResult]:
    if points is None:
      points = build_sweep_matrix(config)
    logging.info(
        'Starting %s benchmark sweep over file sizes: %s',
        'parallel' if config.parallel else 'sequential',
        ' '.join(point.size_class for point in points),
    )
    if config.parallel:
      return await self.run_parallel(points, config.max_parallel_jobs)
    return await self.run_sequential(points)
