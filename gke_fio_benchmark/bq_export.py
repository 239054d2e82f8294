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

"""Python module for exporting FIO sweep results to BigQuery.

It creates the dataset and the table that store one row per benchmark job of
a sweep, and inserts the rows of a sweep into that table.

Note:
  Make sure BigQuery API is enabled for the project
"""

import logging
from typing import List, Sequence

from gke_fio_benchmark import utils
from gke_fio_benchmark.fio_workload import BenchmarkParameters
from gke_fio_benchmark.result_extractor import BenchmarkResult
from google.cloud import bigquery
from google.cloud.bigquery.job import QueryJob


class Timestamp:
  """Timestamp values in string form."""

  def __init__(self, val: str):
    self.val = val

  def __str__(self):
    return self.val


# Names of the fields, in the order of the columns of the BQ table.
SWEEP_TABLE_ROW_SCHEMA = [
    'experiment_id',
    'job_id',
    'status',
    'operation',
    'file_size',
    'file_size_in_bytes',
    'block_size',
    'block_size_in_bytes',
    'num_files',
    'iterations',
    'bucket_name',
    'gcsfuse_mount_options',
    'end_time',
    'iops',
    'throughput_in_mbps',
    'pod_max_cpu_millicores',
    'pod_max_memory_mib',
    'fio_max_cpu_millicores',
    'fio_max_memory_mib',
    'gcsfuse_max_cpu_millicores',
    'gcsfuse_max_memory_mib',
]


class SweepTableRow:
  """Class containing all the fields of the sweep bigquery table as elements.

  This class represents the types and zero-values of all the fields/columns.
  iops and throughput_in_mbps are set to None for failed jobs.
  """

  def __init__(self):
    self.experiment_id = str('')
    self.job_id = str('')
    self.status = str('')
    self.operation = str('')
    self.file_size = str('')
    self.file_size_in_bytes = int(0)
    self.block_size = str('')
    self.block_size_in_bytes = int(0)
    self.num_files = int(0)
    self.iterations = int(0)
    self.bucket_name = str('')
    self.gcsfuse_mount_options = str('')
    self.end_time = Timestamp('')
    self.iops = float(0.0)
    self.throughput_in_mbps = float(0.0)
    self.pod_max_cpu_millicores = int(0)
    self.pod_max_memory_mib = int(0)
    self.fio_max_cpu_millicores = int(0)
    self.fio_max_memory_mib = int(0)
    self.gcsfuse_max_cpu_millicores = int(0)
    self.gcsfuse_max_memory_mib = int(0)


def map_type_to_bq_type_str(t) -> str:
  if t == str:
    return 'STRING'
  elif t == int:
    return 'INT64'
  elif t == float:
    return 'FLOAT64'
  elif t == Timestamp:
    return 'TIMESTAMP'
  else:
    raise ValueError(f'Unknown type: {t}')


def rows_from_results(
    results: Sequence[BenchmarkResult],
    params: Sequence[BenchmarkParameters],
    experiment_id: str,
    bucket_name: str,
    end_epoch: int,
) -> List[SweepTableRow]:
  """Returns one SweepTableRow per result; params[i] is the input of results[i]."""
  rows = []
  end_time = Timestamp(utils.unix_to_timestamp(end_epoch))
  for result, param in zip(results, params):
    row = SweepTableRow()
    row.experiment_id = experiment_id
    row.job_id = result.job_id
    row.status = result.status.value
    row.operation = param.io_mode
    row.file_size = result.size_class
    row.file_size_in_bytes = utils.convert_size_to_bytes(param.file_size)
    row.block_size = param.block_size
    row.block_size_in_bytes = utils.convert_size_to_bytes(param.block_size)
    row.num_files = result.file_count
    row.iterations = param.iterations
    row.bucket_name = bucket_name
    row.gcsfuse_mount_options = param.mount_options_string()
    row.end_time = end_time
    row.iops = result.iops
    row.throughput_in_mbps = result.bandwidth_mbs
    peaks = result.peaks
    row.pod_max_cpu_millicores = peaks.pod.max_cpu_millicores
    row.pod_max_memory_mib = peaks.pod.max_memory_mib
    row.fio_max_cpu_millicores = peaks.workload.max_cpu_millicores
    row.fio_max_memory_mib = peaks.workload.max_memory_mib
    row.gcsfuse_max_cpu_millicores = peaks.sidecar.max_cpu_millicores
    row.gcsfuse_max_memory_mib = peaks.sidecar.max_memory_mib
    rows.append(row)
  return rows


class SweepBigqueryExporter:
  """Class to create and update the Bigquery dataset and table storing sweep results.

  Attributes:
    project_id (str): The GCP project in which dataset and tables will be
      created
    dataset_id (str): The name of the dataset in the project that will store the
      tables
    table_id (str): The name of the bigquery table the rows are stored in.
    client (google.cloud.bigquery.client.Client): The client for interacting
      with Bigquery. Default value is bigquery.Client(project=project_id).
  """

  def __init__(
      self, project_id: str, dataset_id: str, table_id: str, bq_client=None
  ):
    if bq_client is None:
      self.client = bigquery.Client(project=project_id)
    else:
      self.client = bq_client
    self.project_id = project_id
    self.dataset_id = dataset_id
    self.table_id = table_id

  @property
  def full_table_id(self) -> str:
    return f'{self.project_id}.{self.dataset_id}.{self.table_id}'

  def _get_table_from_table_id(self, table_id):
    """Gets the table from BigQuery from table ID

    Args:
      table_id (str): String representing the ID or name of the table
    Returns:
      google.cloud.bigquery.table.Table: The table in BigQuery
    """
    dataset = self.client.get_dataset(self.dataset_id)
    return self.client.get_table(dataset.table(table_id))

  def _execute_query(self, query) -> QueryJob:
    """Executes the query in BigQuery and raises an exception if query
       execution could not be completed.

    Args:
      query (str): Query that will be executed in BigQuery.

    Raises:
      RuntimeError: If query execution failed.
    """
    job = self.client.query(query)
    if job.errors:
      for error in job.errors:
        raise RuntimeError(f"Error message: {error['message']}")
    return job

  def setup_dataset_and_table(self):
    """Creates the dataset and the sweep table if they don't exist yet."""
    dataset = bigquery.Dataset(f'{self.project_id}.{self.dataset_id}')
    self.client.create_dataset(dataset, exists_ok=True)

    header = SweepTableRow()
    columns = ', '.join(
        f'{field} {map_type_to_bq_type_str(type(getattr(header, field)))}'
        for field in SWEEP_TABLE_ROW_SCHEMA
    )
    self._execute_query(
        f'CREATE TABLE IF NOT EXISTS {self.full_table_id}({columns}) OPTIONS'
        " (description = 'Table for storing FIO sweep results from GKE.');"
    )

  def _has_experiment_id(self, experiment_id: str) -> bool:
    """Returns true if the current BQ table has any rows for the given experiment_id."""
    query = (
        f'select count(*) as num_rows from {self.full_table_id} where'
        f" experiment_id='{experiment_id}' group by experiment_id"
    )
    results = self.client.query_and_wait(query)
    return bool(results) and results.total_rows > 0

  def _insert_rows_with_retry(self, table, rows_to_insert: list):
    """Inserts given rows to the given table in a single transaction.

    If the transaction fails, it tries inserting all the rows in rows_to_insert
    one by one.
    """
    error = self.client.insert_rows(table, rows_to_insert)
    if error:
      logging.warning(
          'Some rows failed to insert using insert_rows. Error: %s. Will now'
          ' try to insert each row one by one.',
          error,
      )
      for row_to_insert in rows_to_insert:
        error = self.client.insert_rows(table, [row_to_insert])
        if error:
          logging.warning(
              'Failed to insert the following row even on retry. row: %r,'
              ' Error: %s',
              row_to_insert,
              error,
          )

  def insert_rows(self, sweepTableRows: List[SweepTableRow]) -> int:
    """Inserts the given rows, all of one experiment, into the table.

    Returns:
      The number of rows handed to BigQuery, 0 if the experiment was already
      exported.

    Raises:
      ValueError: If the rows don't share one non-empty experiment_id.
    """
    if not sweepTableRows:
      return 0

    experiment_id = sweepTableRows[0].experiment_id
    if not experiment_id:
      raise ValueError('experiment_id is null for first row')
    for row in sweepTableRows:
      if row.experiment_id != experiment_id:
        raise ValueError(
            'There is a mismatch in the experiment_id for a row. Expected:'
            f' {experiment_id}, Got: {row.experiment_id}'
        )

    if self._has_experiment_id(experiment_id):
      logging.warning(
          'Bigquery table %s already has the experiment_id %s, so skipping'
          ' inserting rows for it.',
          self.full_table_id,
          experiment_id,
      )
      return 0

    # Values keep the order of SWEEP_TABLE_ROW_SCHEMA; None is inserted as NULL.
    rows_to_insert = []
    for sweepTableRow in sweepTableRows:
      row_to_be_inserted = []
      for field in SWEEP_TABLE_ROW_SCHEMA:
        value = getattr(sweepTableRow, field)
        row_to_be_inserted.append(None if value is None else str(value))
      rows_to_insert.append(tuple(row_to_be_inserted))

    table = self._get_table_from_table_id(self.table_id)
    self._insert_rows_with_retry(table, rows_to_insert)
    logging.info(
        'Inserted %s rows of experiment %s into %s',
        len(rows_to_insert),
        experiment_id,
        self.full_table_id,
    )
    return len(rows_to_insert)
