# Copyright 2025 Pipecheck Authors
#
# Licensed under the Apache License, Version 2.0 (the "License"); you may
# not use this file except in compliance with the License. You may obtain
# a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
# WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
# License for the specific language governing permissions and limitations
# under the License.

import functools
import logging

from packaging.version import InvalidVersion, Version

log = logging.getLogger("pipecheck.versions")

HEAD_REF = 'HEAD'
LATEST_TAG = 'latest'
TILDE_LATEST_TAG = '~latest'
MAIN_BRANCH = 'main'
MASTER_BRANCH = 'master'


def latest_refs(default_branch):
    """References that always denote the newest state of a project."""
    return [HEAD_REF, default_branch, LATEST_TAG, TILDE_LATEST_TAG,
            MAIN_BRANCH, MASTER_BRANCH]


def parse_version(version):
    try:
        return Version(version)
    except (InvalidVersion, TypeError):
        return None


def _compare_newest_first(a, b):
    va = parse_version(a)
    vb = parse_version(b)
    if va is not None and vb is not None:
        if va == vb:
            return 0
        return -1 if va > vb else 1
    if a == b:
        return 0
    return -1 if a > b else 1


def sort_versions(versions):
    """Sort version names newest first.

    Semantic versions are compared as such; any pair that does not
    parse is compared as strings.
    """
    return sorted(versions, key=functools.cmp_to_key(_compare_newest_first))


def is_up_to_date(version, latest_version, refs):
    if not version or not latest_version:
        log.debug("Cannot compare empty version %r with latest %r",
                  version, latest_version)
        return False
    if version == latest_version:
        return True
    if version in refs:
        return True
    current = parse_version(version)
    latest = parse_version(latest_version)
    if current is not None and latest is not None:
        return current >= latest
    log.debug("Versions %s and %s are not comparable", version,
              latest_version)
    return False
