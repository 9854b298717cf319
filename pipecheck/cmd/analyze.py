# Copyright 2012 Hewlett-Packard Development Company, L.P.
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
import logging
import sys

import pipecheck.cmd
from pipecheck import report
from pipecheck.analyzer import Analyzer
from pipecheck.configloader import PolicyLoader
from pipecheck.driver.gitlab.gitlabconnection import (
    GitlabAPIClientException,
    GitlabConnection,
)
from pipecheck.exceptions import (
    ConfigurationError,
    PolicyConfigurationError,
    ProjectNotFoundError,
)
from pipecheck.lib.config import any_to_bool, get_default


def threshold_type(value):
    try:
        threshold = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(
            "invalid threshold %r: not a number" % (value,))
    if threshold < 0 or threshold > 100:
        raise argparse.ArgumentTypeError(
            "invalid threshold %s: must be between 0 and 100" % (value,))
    return threshold


class Pipecheck(pipecheck.cmd.PipecheckApp):
    app_name = 'pipecheck'
    app_description = 'Check GitLab CI/CD pipelines against a policy.'
    log = logging.getLogger("pipecheck.Pipecheck")
    print_report = True

    def createParser(self):
        parser = super(Pipecheck, self).createParser()
        subparsers = parser.add_subparsers(title='commands',
                                           description='valid commands',
                                           help='additional help')

        cmd_analyze = subparsers.add_parser(
            'analyze', help='analyze the pipeline of a project')
        cmd_analyze.add_argument('--gitlab-url', dest='gitlab_url',
                                 default=None,
                                 help='GitLab instance URL '
                                      '(default: https://gitlab.com)')
        cmd_analyze.add_argument('--project', help='project path',
                                 required=True)
        cmd_analyze.add_argument('--config', dest='policy', default=None,
                                 help='policy file (searched in the '
                                      'working directory by default)')
        cmd_analyze.add_argument('--threshold', type=threshold_type,
                                 required=True,
                                 help='minimum overall compliance, '
                                      'between 0 and 100')
        cmd_analyze.add_argument('--branch', default=None,
                                 help='branch to analyze (default: the '
                                      'project default branch)')
        cmd_analyze.add_argument('--print', dest='print_report',
                                 action=argparse.BooleanOptionalAction,
                                 default=None,
                                 help='print the text report on stdout')
        cmd_analyze.add_argument('-o', '--output', default=None,
                                 help='write the JSON report to this file')
        cmd_analyze.add_argument('-v', dest='verbose', action='store_true',
                                 help='verbose output')
        cmd_analyze.set_defaults(func=self.analyze)
        return parser

    def parseArguments(self, args=None):
        parser = super(Pipecheck, self).parseArguments(args)
        if not getattr(self.args, 'func', None):
            parser.error("a command is required")
        return parser

    def printReport(self):
        if self.args.print_report is not None:
            return self.args.print_report
        return any_to_bool(get_default(self.config, 'pipecheck', 'print',
                                       True))

    def analyze(self):
        try:
            policy, policy_path = PolicyLoader().loadPolicy(self.args.policy)
        except PolicyConfigurationError as e:
            self.log.error("Unable to load the policy: %s", e)
            return 1
        print("Using policy: %s" % policy_path, file=sys.stderr)
        print("Analyzing project: %s" % self.args.project, file=sys.stderr)

        connection = GitlabConnection('gitlab', self.gitlab_config)
        analyzer = Analyzer(connection, policy)
        try:
            result = analyzer.run(self.args.project, branch=self.args.branch,
                                  threshold=self.args.threshold)
        except ProjectNotFoundError as e:
            self.log.error("%s", e)
            return 1
        except GitlabAPIClientException as e:
            self.log.error("GitLab API error: %s", e)
            return 1

        if self.print_report:
            print(report.format_text(result))
        if self.args.output:
            try:
                report.write_json(result, self.args.output)
            except OSError as e:
                self.log.error("Unable to write the report to %s: %s",
                               self.args.output, e)
                return 1

        if not result.passed:
            self.log.warning("Compliance %.1f%% is below the required "
                             "%.1f%%", result.compliance, result.threshold)
            return 1
        return 0

    def main(self, args=None):
        self.parseArguments(args)
        try:
            self.readConfig()
            self.gitlab_config = self.getGitlabConfig(
                url=self.args.gitlab_url)
            self.print_report = self.printReport()
            self.setup_logging('logging', 'config',
                               secrets=[self.gitlab_config.get('api_token')])
        except (ConfigurationError, configparser.Error, ValueError) as e:
            print("Error: %s" % e, file=sys.stderr)
            sys.exit(1)
        sys.exit(self.args.func())


def main():
    Pipecheck().main()


if __name__ == "__main__":
    main()
