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

"""This file defines unit tests for functionalities in job_spec.py"""

import re
import unittest

from gke_fio_benchmark import job_spec
from gke_fio_benchmark.fio_workload import BenchmarkParameters
from gke_fio_benchmark.job_spec import JobSpecBuilder
import yaml


def _params(mount_options='implicit-dirs,metadata-cache:ttl-secs:60'):
  return BenchmarkParameters(
      file_count=400,
      file_size='64K',
      iterations=2,
      io_mode='read',
      block_size='1M',
      mount_options=mount_options,
  )


def _env(container) -> dict:
  return {e['name']: e['value'] for e in container['env']}


class NewJobNameTest(unittest.TestCase):

  def test_format(self):
    name = job_spec.new_job_name(now=1700000000.7)
    self.assertRegex(name, r'^fio-test-1700000000-[0-9a-f]{6}$')

  def test_names_are_not_reused(self):
    names = {job_spec.new_job_name(now=1700000000) for _ in range(50)}
    self.assertEqual(len(names), 50)


class JobSpecBuilderTest(unittest.TestCase):

  def setUp(self):
    self.builder = JobSpecBuilder(
        bucket_name='my-bucket',
        service_account='warp-benchmark',
        namespace='bench',
        script='#!/bin/bash\necho hi\n',
    )

  def test_configmap(self):
    spec = self.builder.build(_params(), 'fio-test-1-abcdef')

    self.assertEqual(spec.configmap_name, 'fio-script-fio-test-1-abcdef')
    self.assertEqual(spec.configmap['kind'], 'ConfigMap')
    self.assertEqual(
        spec.configmap['metadata']['name'], 'fio-script-fio-test-1-abcdef'
    )
    self.assertEqual(
        spec.configmap['data'], {'fio-test-script.sh': '#!/bin/bash\necho hi\n'}
    )

  def test_job(self):
    spec = self.builder.build(_params(), 'fio-test-1-abcdef')
    job = spec.job

    self.assertEqual(job['apiVersion'], 'batch/v1')
    self.assertEqual(job['kind'], 'Job')
    self.assertEqual(job['metadata']['name'], 'fio-test-1-abcdef')
    self.assertEqual(job['metadata']['namespace'], 'bench')
    self.assertEqual(job['metadata']['labels']['app'], 'fio-benchmark')
    self.assertEqual(job['spec']['backoffLimit'], 0)

    template = job['spec']['template']
    self.assertEqual(
        template['metadata']['annotations'],
        {
            'gke-gcsfuse/volumes': 'true',
            'gke-gcsfuse/cpu-limit': '0',
            'gke-gcsfuse/memory-limit': '0',
            'gke-gcsfuse/ephemeral-storage-limit': '0',
            'kubectl.kubernetes.io/default-container': 'fio-test',
        },
    )
    pod_spec = template['spec']
    self.assertEqual(pod_spec['restartPolicy'], 'Never')
    self.assertEqual(pod_spec['serviceAccountName'], 'warp-benchmark')

  def test_workload_container(self):
    spec = self.builder.build(_params(), 'fio-test-1-abcdef')
    containers = spec.job['spec']['template']['spec']['containers']

    self.assertEqual([c['name'] for c in containers], ['fio-test'])
    container = containers[0]
    self.assertEqual(container['image'], 'ubuntu:22.04')
    self.assertEqual(container['command'], ['bash', '/tmp/fio-test-script.sh'])
    env = _env(container)
    self.assertEqual(env['NUM_FILES'], '400')
    self.assertEqual(env['FILE_SIZE'], '64K')
    self.assertEqual(env['ITERATIONS'], '2')
    self.assertEqual(env['MODE'], 'read')
    # Clamped to the file size.
    self.assertEqual(env['BLOCK_SIZE'], '64K')
    self.assertEqual(env['JOB_NAME'], 'fio-test-1-abcdef')

  def test_sidecar_declared_only_with_custom_image(self):
    builder = JobSpecBuilder(
        'my-bucket',
        'ksa',
        sidecar_image='gcr.io/p/gcs-fuse-csi-driver-sidecar-mounter:v1',
        script='',
    )
    containers = builder.build(_params(), 'fio-test-1-abcdef').job['spec'][
        'template'
    ]['spec']['containers']

    self.assertEqual(
        [c['name'] for c in containers], ['gke-gcsfuse-sidecar', 'fio-test']
    )
    self.assertEqual(
        containers[0]['image'],
        'gcr.io/p/gcs-fuse-csi-driver-sidecar-mounter:v1',
    )

  def test_default_container_is_workload_with_sidecar(self):
    builder = JobSpecBuilder(
        'my-bucket',
        'ksa',
        sidecar_image='gcr.io/p/gcs-fuse-csi-driver-sidecar-mounter:v1',
        script='',
    )
    template = builder.build(_params(), 'fio-test-1-abcdef').job['spec'][
        'template'
    ]

    self.assertEqual(
        template['metadata']['annotations'][
            'kubectl.kubernetes.io/default-container'
        ],
        'fio-test',
    )

  def test_volumes(self):
    spec = self.builder.build(_params(), 'fio-test-1-abcdef')
    volumes = spec.job['spec']['template']['spec']['volumes']

    csi = volumes[0]['csi']
    self.assertEqual(csi['driver'], 'gcsfuse.csi.storage.gke.io')
    self.assertEqual(csi['volumeAttributes']['bucketName'], 'my-bucket')
    self.assertEqual(
        csi['volumeAttributes']['mountOptions'],
        'implicit-dirs,metadata-cache:ttl-secs:60,read_ahead_kb=1024',
    )
    self.assertEqual(
        volumes[1]['configMap'],
        {'name': 'fio-script-fio-test-1-abcdef', 'defaultMode': 0o755},
    )

  def test_read_ahead_not_duplicated(self):
    self.assertEqual(
        job_spec.gcsfuse_mount_options(
            _params('implicit-dirs,read_ahead_kb=4096')
        ),
        'implicit-dirs,read_ahead_kb=4096',
    )

  def test_deterministic_for_same_inputs(self):
    first = self.builder.build(_params(), 'fio-test-1-abcdef').to_yaml()
    second = self.builder.build(_params(), 'fio-test-1-abcdef').to_yaml()
    self.assertEqual(first, second)

  def test_to_yaml_round_trips(self):
    spec = self.builder.build(_params(), 'fio-test-1-abcdef')
    documents = list(yaml.safe_load_all(spec.to_yaml()))

    self.assertEqual(documents, spec.documents)

  def test_generates_job_name(self):
    spec = self.builder.build(_params())
    self.assertTrue(re.match(r'^fio-test-\d+-[0-9a-f]{6}$', spec.job_name))

  def test_packaged_script(self):
    script = job_spec.load_fio_script()
    self.assertIn('GKE Job ID: ${JOB_NAME}', script)
    self.assertIn('FIO_SUMMARY_JSON', script)
    self.assertIn('Test completed!', script)


if __name__ == '__main__':
  unittest.main()
