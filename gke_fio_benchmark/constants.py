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

"""Constants shared by the FIO-on-GKE benchmark modules."""

# Container names inside the benchmark pod.
WORKLOAD_CONTAINER_NAME = 'fio-test'
GCSFUSE_CONTAINER_NAME = 'gke-gcsfuse-sidecar'

# Label put on every job/pod/configmap created by this tool.
APP_LABEL_KEY = 'app'
APP_LABEL_VALUE = 'fio-benchmark'
APP_LABEL_SELECTOR = f'{APP_LABEL_KEY}={APP_LABEL_VALUE}'

JOB_NAME_PREFIX = 'fio-test'
CONFIGMAP_NAME_PREFIX = 'fio-script'
SCRIPT_FILE_NAME = 'fio-test-script.sh'

GCSFUSE_CSI_DRIVER = 'gcsfuse.csi.storage.gke.io'
DEFAULT_WORKLOAD_IMAGE = 'ubuntu:22.04'
DEFAULT_READ_AHEAD_KB = 1024
DATA_MOUNT_PATH = '/data'

DEFAULT_FILE_SIZES = [
    '64K',
    '256K',
    '1M',
    '4M',
    '16M',
    '64M',
    '100M',
    '256M',
    '1G',
    '4G',
    '10G',
]
DEFAULT_ITERATIONS = 2
DEFAULT_MODE = 'read'
DEFAULT_BLOCK_SIZE = '1M'
DEFAULT_MOUNT_OPTIONS = (
    'implicit-dirs,metadata-cache:ttl-secs:60,enable-buffered-read,'
    'client-protocol=grpc,log-severity=info,read-block-size-mb=16,'
    'read-max-blocks-per-handle=20,read-global-max-blocks=40'
)
DEFAULT_MAX_PARALLEL_JOBS = 3

# Timing defaults, all in seconds.
DEFAULT_JOB_TIMEOUT = 7200
DEFAULT_POD_CREATION_TIMEOUT = 300
DEFAULT_POD_POLL_INTERVAL = 1
DEFAULT_COMPLETION_POLL_INTERVAL = 10
DEFAULT_MONITOR_INTERVAL = 2
DEFAULT_MONITOR_RUNNING_TIMEOUT = 30
DEFAULT_MONITOR_GRACE = 10
DEFAULT_SEQUENTIAL_PAUSE = 10
DEFAULT_PARALLEL_STAGGER = 5

# Report sentinels.
FAILED = 'FAILED'
NOT_AVAILABLE = 'NA'
UNKNOWN_JOB_ID = 'UNKNOWN'
