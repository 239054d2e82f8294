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

"""Reads the peak usage of the gcsfuse sidecar from Cloud Monitoring.

Used to fill in the sidecar peaks of a job when `kubectl top` never reported
the sidecar container, e.g. for very short jobs.
"""

import asyncio
import logging
import math
from typing import Optional, Tuple

from gke_fio_benchmark import constants
from google.cloud import monitoring_v3

_ALIGNMENT_PERIOD_SECONDS = 60


def _is_relevant_monitoring_result(
    result,
    cluster_name: str,
    pod_name: str,
    namespace_name: str,
) -> bool:
  return (
      hasattr(result, 'resource')
      and hasattr(result.resource, 'type')
      and result.resource.type == 'k8s_container'
      and hasattr(result.resource, 'labels')
      and result.resource.labels.get('cluster_name') == cluster_name
      and result.resource.labels.get('pod_name') == pod_name
      and result.resource.labels.get('container_name')
      == constants.GCSFUSE_CONTAINER_NAME
      and result.resource.labels.get('namespace_name') == namespace_name
      and hasattr(result, 'points')
  )


class SidecarMetricsClient:
  """Queries max cpu/memory of the gcsfuse sidecar of a pod."""

  def __init__(
      self,
      project_id: str,
      cluster_name: str,
      namespace_name: str,
      client: Optional[monitoring_v3.MetricServiceClient] = None,
  ):
    self.project_id = project_id
    self.cluster_name = cluster_name
    self.namespace_name = namespace_name
    self._client = client

  @property
  def client(self) -> monitoring_v3.MetricServiceClient:
    if self._client is None:
      self._client = monitoring_v3.MetricServiceClient()
    return self._client

  def _list_time_series(
      self,
      metric_filter: str,
      aligner,
      pod_name: str,
      start_epoch: int,
      end_epoch: int,
  ):
    interval = monitoring_v3.TimeInterval({
        'start_time': {'seconds': start_epoch, 'nanos': 0},
        'end_time': {'seconds': end_epoch, 'nanos': 0},
    })
    aggregation = monitoring_v3.Aggregation({
        'alignment_period': {'seconds': _ALIGNMENT_PERIOD_SECONDS},
        'per_series_aligner': aligner,
    })
    results = self.client.list_time_series(
        request={
            'name': f'projects/{self.project_id}',
            'filter': (
                metric_filter
                + f' AND resource.labels.cluster_name = "{self.cluster_name}"'
                + f' AND resource.labels.pod_name = "{pod_name}"'
                + ' AND resource.labels.container_name ='
                f' "{constants.GCSFUSE_CONTAINER_NAME}"'
                + ' AND resource.labels.namespace_name ='
                f' "{self.namespace_name}"'
            ),
            'interval': interval,
            'view': monitoring_v3.ListTimeSeriesRequest.TimeSeriesView.FULL,
            'aggregation': aggregation,
        }
    )
    return [
        result
        for result in results
        if _is_relevant_monitoring_result(
            result, self.cluster_name, pod_name, self.namespace_name
        )
    ]

  def get_max_memory_mib(
      self, pod_name: str, start_epoch: int, end_epoch: int
  ) -> Optional[int]:
    results = self._list_time_series(
        'metric.type = "kubernetes.io/container/memory/used_bytes"'
        ' AND metric.labels.memory_type = "non-evictable"',
        monitoring_v3.Aggregation.Aligner.ALIGN_MAX,
        pod_name,
        start_epoch,
        end_epoch,
    )
    values = [
        max(point.value.int64_value, 0)
        for result in results
        for point in result.points
    ]
    if not values:
      return None
    return round(max(values) / 2**20)  # bytes to MiB

  def get_max_cpu_millicores(
      self, pod_name: str, start_epoch: int, end_epoch: int
  ) -> Optional[int]:
    results = self._list_time_series(
        'metric.type = "kubernetes.io/container/cpu/core_usage_time"',
        monitoring_v3.Aggregation.Aligner.ALIGN_RATE,
        pod_name,
        start_epoch,
        end_epoch,
    )
    values = [
        point.value.double_value
        for result in results
        for point in result.points
        if not math.isnan(point.value.double_value)
    ]
    if not values:
      return None
    return round(max(values) * 1000)  # cores to millicores

  def get_sidecar_peak(
      self, pod_name: str, start_epoch: int, end_epoch: int
  ) -> Optional[Tuple[int, int]]:
    """Returns (max cpu millicores, max memory MiB), or None if unknown."""
    cpu = self.get_max_cpu_millicores(pod_name, start_epoch, end_epoch)
    memory = self.get_max_memory_mib(pod_name, start_epoch, end_epoch)
    if cpu is None and memory is None:
      return None
    return cpu or 0, memory or 0

  async def get_sidecar_peak_async(
      self, pod_name: str, start_epoch: int, end_epoch: int
  ) -> Optional[Tuple[int, int]]:
    """Runs get_sidecar_peak off the event loop. Errors give None."""
    try:
      return await asyncio.to_thread(
          self.get_sidecar_peak, pod_name, start_epoch, end_epoch
      )
    except Exception as e:
      logging.warning(
          'Failed to read sidecar metrics of pod %s from Cloud Monitoring: %s',
          pod_name,
          e,
      )
      return None
