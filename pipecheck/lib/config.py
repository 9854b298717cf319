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

import os


def get_default(config, section, option, default=None, expand_user=False):
    if config.has_option(section, option):
        value = config.get(section, option)
    else:
        value = default
    if expand_user and value:
        return os.path.expanduser(value)
    return value


def any_to_bool(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        if value.lower() in ('yes', 'true', '1', 'on'):
            return True
        if value.lower() in ('no', 'false', '0', 'off', ''):
            return False
    elif isinstance(value, int):
        return bool(value)
    raise ValueError('Cannot convert %r to a boolean' % (value,))
