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

import unittest
from unittest import mock

from gke_fio_benchmark import kubectl as kubectl_lib
from gke_fio_benchmark.kubectl import Kubectl
from gke_fio_benchmark.kubectl import parse_top_containers_output
from gke_fio_benchmark.kubectl import parse_top_pod_output


class TopOutputParserTest(unittest.TestCase):

  def test_parse_top_pod_output(self):
    self.assertEqual(
        parse_top_pod_output('fio-test-1-abcdef-xyz   250m   512Mi\n'),
        (250, 512),
    )

  def test_parse_top_pod_output_without_units(self):
    self.assertEqual(parse_top_pod_output('pod 0 12'), (0, 12))

  def test_parse_top_pod_output_malformed(self):
    for output in ['', 'pod', 'pod 250m', 'pod <unknown> <unknown>', 'pod 1.5 2Gi']:
      with self.subTest(output=output):
        self.assertIsNone(parse_top_pod_output(output))

  def test_parse_top_containers_output(self):
    output = (
        'pod-xyz   fio-test              120m   300Mi\n'
        'pod-xyz   gke-gcsfuse-sidecar   800m   1200Mi\n'
        'garbage line\n'
        'pod-xyz   other                 abc    10Mi\n'
    )
    self.assertEqual(
        parse_top_containers_output(output),
        {'fio-test': (120, 300), 'gke-gcsfuse-sidecar': (800, 1200)},
    )


@mock.patch.object(
    kubectl_lib.utils, 'run_command_async', new_callable=mock.AsyncMock
)
class KubectlTest(unittest.IsolatedAsyncioTestCase):

  async def test_apply(self, mock_run):
    mock_run.return_value = ('job.batch/x created', '', 0)

    await Kubectl('bench').apply('/tmp/x.yaml')

    mock_run.assert_awaited_once_with(
        ['kubectl', '--namespace=bench', 'apply', '-f', '/tmp/x.yaml'],
        check=True,
    )

  async def test_get_pod_name_for_job(self, mock_run):
    mock_run.return_value = ('fio-test-1-abcdef-xyz', '', 0)

    pod_name = await Kubectl().get_pod_name_for_job('fio-test-1-abcdef')

    self.assertEqual(pod_name, 'fio-test-1-abcdef-xyz')
    self.assertIn('job-name=fio-test-1-abcdef', mock_run.call_args.args[0])

  async def test_get_pod_name_for_job_not_created(self, mock_run):
    mock_run.return_value = ('', 'array index out of bounds', 1)

    self.assertIsNone(await Kubectl().get_pod_name_for_job('x'))

  async def test_get_pod_phase(self, mock_run):
    mock_run.return_value = ('Running', '', 0)
    self.assertEqual(await Kubectl().get_pod_phase('p'), 'Running')

    mock_run.return_value = ('', 'not found', 1)
    self.assertEqual(await Kubectl().get_pod_phase('p'), 'Unknown')

  async def test_top_pod(self, mock_run):
    mock_run.return_value = ('p 250m 512Mi', '', 0)
    self.assertEqual(await Kubectl().top_pod('p'), (250, 512))

    mock_run.return_value = ('', 'metrics not available yet', 1)
    self.assertIsNone(await Kubectl().top_pod('p'))

  async def test_top_pod_containers(self, mock_run):
    mock_run.return_value = ('p fio-test 10m 20Mi', '', 0)
    self.assertEqual(
        await Kubectl().top_pod_containers('p'), {'fio-test': (10, 20)}
    )
    self.assertIn('--containers', mock_run.call_args.args[0])

  async def test_get_job_condition(self, mock_run):
    for stdout, expected in [
        ('', None),
        ('Complete', 'Complete'),
        ('SuccessCriteriaMet Complete', 'Complete'),
        ('FailureTarget Failed', 'Failed'),
    ]:
      with self.subTest(stdout=stdout):
        mock_run.return_value = (stdout, '', 0)
        self.assertEqual(await Kubectl().get_job_condition('j'), expected)

  async def test_delete_job_and_configmap(self, mock_run):
    mock_run.return_value = ('', '', 0)

    await Kubectl().delete_job('j')
    await Kubectl().delete_configmap('fio-script-j')

    mock_run.assert_has_awaits([
        mock.call(
            [
                'kubectl',
                '--namespace=default',
                'delete',
                'job',
                'j',
                '--ignore-not-found',
                '--cascade=foreground',
            ],
            check=True,
        ),
        mock.call(
            [
                'kubectl',
                '--namespace=default',
                'delete',
                'configmap',
                'fio-script-j',
                '--ignore-not-found',
            ],
            check=True,
        ),
    ])

  async def test_delete_jobs_by_label_with_field_selector(self, mock_run):
    mock_run.return_value = ('', '', 0)

    await Kubectl().delete_jobs_by_label(
        'app=fio-benchmark', 'status.successful=1'
    )

    command = mock_run.call_args.args[0]
    self.assertIn('app=fio-benchmark', command)
    self.assertIn('--field-selector=status.successful=1', command)

  async def test_latest_pod_name(self, mock_run):
    mock_run.return_value = ('fio-test-2-xyz', '', 0)
    self.assertEqual(
        await Kubectl().latest_pod_name('app=fio-benchmark'), 'fio-test-2-xyz'
    )

    mock_run.return_value = ('', '', 0)
    self.assertIsNone(await Kubectl().latest_pod_name('app=fio-benchmark'))

  async def test_get_logs_reads_workload_container(self, mock_run):
    mock_run.return_value = ('Test completed!', '', 0)

    logs = await Kubectl().get_logs('fio-test-pod')

    self.assertEqual(logs, 'Test completed!')
    mock_run.assert_awaited_once_with(
        [
            'kubectl',
            '--namespace=default',
            'logs',
            'fio-test-pod',
            '-c',
            'fio-test',
        ],
        check=True,
    )


if __name__ == '__main__':
  unittest.main()
