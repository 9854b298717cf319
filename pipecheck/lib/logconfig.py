# Copyright 2017 Red Hat, Inc.
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

import abc
import copy
import logging.config
import os

from pipecheck.lib import yamlutil

_DEFAULT_CLI_LOGGING_CONFIG = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'console': {
            'class': 'pipecheck.lib.logutil.MultiLineFormatter',
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
        },
    },
    'filters': {
        'mask': {
            '()': 'pipecheck.lib.logutil.TokenMaskFilter',
            'secrets': [],
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'stream': 'ext://sys.stderr',
            'formatter': 'console',
            'filters': ['mask'],
            'level': 'WARNING',
        },
    },
    'loggers': {
        'pipecheck': {
            'handlers': ['console'],
            'level': 'DEBUG',
            'propagate': False,
        },
        'urllib3': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False,
        },
    },
    'root': {'handlers': [], 'level': 'WARNING'},
}


def _read_config_file(filename: str):
    if not os.path.exists(filename):
        raise ValueError("Unable to read logging config file at %s" %
                         filename)

    if os.path.splitext(filename)[1] in ('.yml', '.yaml', '.json'):
        with open(filename, 'r') as f:
            return yamlutil.safe_load(f)
    return filename


def load_config(filename: str):
    config = _read_config_file(filename)
    if isinstance(config, dict):
        return DictLoggingConfig(config)
    return FileLoggingConfig(filename)


class LoggingConfig(object, metaclass=abc.ABCMeta):

    @abc.abstractmethod
    def apply(self):
        """Apply the config information to the current logging config."""


class DictLoggingConfig(LoggingConfig, metaclass=abc.ABCMeta):

    def __init__(self, config):
        self._config = config

    def apply(self):
        logging.config.dictConfig(self._config)


class CLILoggingConfig(DictLoggingConfig):
    """Log to stderr, masking access tokens.

    Only warnings and errors are shown unless debug is requested.
    """

    def __init__(self, secrets=None):
        config = copy.deepcopy(_DEFAULT_CLI_LOGGING_CONFIG)
        config['filters']['mask']['secrets'] = [s for s in (secrets or [])
                                                if s]
        super(CLILoggingConfig, self).__init__(config=config)

    def setDebug(self):
        for handler in self._config['handlers'].values():
            handler['level'] = 'DEBUG'
        self._config['loggers']['urllib3']['level'] = 'DEBUG'


class FileLoggingConfig(LoggingConfig):

    def __init__(self, filename):
        self._filename = filename

    def apply(self):
        logging.config.fileConfig(self._filename)
