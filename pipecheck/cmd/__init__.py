# Copyright 2012 Hewlett-Packard Development Company, L.P.
# Copyright 2013 OpenStack Foundation
# Copyright 2021-2022 Acme Gating, LLC
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

import argparse
import configparser
import os

import voluptuous as vs

from pipecheck.driver.gitlab import gitlabconnection
from pipecheck.exceptions import ConfigurationError
from pipecheck.lib import logconfig
from pipecheck.lib.config import get_default

DEFAULT_GITLAB_URL = 'https://gitlab.com'
TOKEN_ENV = 'GITLAB_TOKEN'


class PipecheckApp(object):
    app_name = None  # type: str
    app_description = None  # type: str
    config_locations = ['/etc/pipecheck/pipecheck.conf',
                        '~/pipecheck.conf']

    def __init__(self):
        self.args = None
        self.config = None
        self.gitlab_config = None

    def _get_version(self):
        from pipecheck.version import release_string
        return "Pipecheck version: %s" % release_string

    def createParser(self):
        parser = argparse.ArgumentParser(
            prog=self.app_name,
            description=self.app_description,
            formatter_class=argparse.RawDescriptionHelpFormatter)
        parser.add_argument('-c', dest='config',
                            help='specify the config file')
        parser.add_argument('--version', dest='version', action='version',
                            version=self._get_version(),
                            help='show pipecheck version')
        return parser

    def parseArguments(self, args=None):
        parser = self.createParser()
        self.args = parser.parse_args(args)
        return parser

    def readConfig(self):
        safe_env = {
            k: v for k, v in os.environ.items()
            if k.startswith('PIPECHECK_')
        }
        self.config = configparser.ConfigParser(safe_env)
        if self.args.config:
            path = os.path.expanduser(self.args.config)
            if not os.path.exists(path):
                raise ConfigurationError(
                    "Unable to locate config file %s" % path)
            self.config.read(path)
            return
        for fp in self.config_locations:
            if os.path.exists(os.path.expanduser(fp)):
                self.config.read(os.path.expanduser(fp))
                return
        # Every runtime setting has a default.

    def setup_logging(self, section, parameter, secrets=None):
        if self.config.has_option(section, parameter):
            fp = os.path.expanduser(self.config.get(section, parameter))
            logging_config = logconfig.load_config(fp)
        else:
            logging_config = logconfig.CLILoggingConfig(secrets=secrets)
            if getattr(self.args, 'verbose', False):
                logging_config.setDebug()
        logging_config.apply()

    def getGitlabConfig(self, url=None, token=None):
        """Build and validate the GitLab connection settings.

        Command line values win over the ``[gitlab]`` section, which
        wins over the environment.
        """
        section = 'gitlab'
        connection_config = {
            'baseurl': url or get_default(self.config, section, 'url',
                                          DEFAULT_GITLAB_URL),
            'api_token': token or get_default(
                self.config, section, 'api_token',
                os.environ.get(TOKEN_ENV, '')),
        }
        for key in ('keepalive', 'timeout', 'retries', 'backoff_factor',
                    'backoff_max'):
            if self.config.has_option(section, key):
                connection_config[key] = self.config.get(section, key)
        try:
            return gitlabconnection.getSchema()(connection_config)
        except vs.Invalid as e:
            raise ConfigurationError(
                "Invalid [%s] configuration: %s" % (section, e))
