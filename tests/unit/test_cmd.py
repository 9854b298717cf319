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
import io
import json
import os
import textwrap

import fixtures

from pipecheck.cmd.analyze import Pipecheck, threshold_type
from pipecheck.exceptions import ConfigurationError
from tests.base import BaseTestCase, FIXTURE_DIR, GitlabTestCase

POLICY = os.path.join(FIXTURE_DIR, 'policies', 'full.yaml')


class CmdTestCase(GitlabTestCase):
    def setUp(self):
        super(CmdTestCase, self).setUp()
        self.tmp = self.useFixture(fixtures.TempDir()).path
        self.useFixture(fixtures.MonkeyPatch(
            'pipecheck.cmd.PipecheckApp.config_locations', []))
        self.useFixture(fixtures.MonkeyPatch(
            'pipecheck.cmd.PipecheckApp.setup_logging',
            lambda *args, **kw: None))
        self.useFixture(fixtures.EnvironmentVariable('GITLAB_TOKEN'))
        self.connection_configs = []

        def connection(name, config):
            self.connection_configs.append(config)
            return self.connection
        self.useFixture(fixtures.MonkeyPatch(
            'pipecheck.cmd.analyze.GitlabConnection', connection))
        self.stdout = io.StringIO()
        self.stderr = io.StringIO()
        self.useFixture(fixtures.MonkeyPatch('sys.stdout', self.stdout))
        self.useFixture(fixtures.MonkeyPatch('sys.stderr', self.stderr))

    def writeConfig(self, text):
        path = os.path.join(self.tmp, 'pipecheck.conf')
        with open(path, 'w') as f:
            f.write(textwrap.dedent(text))
        return path

    def run_main(self, *args):
        e = self.assertRaises(SystemExit, Pipecheck().main, list(args))
        return e.code


class TestAnalyzeCommand(CmdTestCase):
    def test_passing(self):
        self.addAppProject()
        output = os.path.join(self.tmp, 'report.json')
        code = self.run_main('analyze', '--project', 'acme/app',
                             '--config', POLICY, '--threshold', '50',
                             '--output', output)
        self.assertEqual(0, code)
        self.assertIn('Project: acme/app', self.stdout.getvalue())
        self.assertIn('Using policy: %s' % POLICY, self.stderr.getvalue())
        self.assertIn('Analyzing project: acme/app', self.stderr.getvalue())
        with open(output) as f:
            data = json.load(f)
        self.assertTrue(data['passed'])
        self.assertEqual(50.0, data['threshold'])
        self.assertEqual('https://gitlab.com',
                         self.connection_configs[0]['baseurl'])

    def test_failing(self):
        self.addAppProject()
        code = self.run_main('analyze', '--project', 'acme/app',
                             '--config', POLICY, '--threshold', '100')
        self.assertEqual(1, code)
        self.assertIn('Status: FAILED', self.stdout.getvalue())

    def test_no_print(self):
        self.addAppProject()
        code = self.run_main('analyze', '--project', 'acme/app',
                             '--config', POLICY, '--threshold', '0',
                             '--no-print')
        self.assertEqual(0, code)
        self.assertEqual('', self.stdout.getvalue())

    def test_print_from_config(self):
        self.addAppProject()
        config = self.writeConfig("""
            [pipecheck]
            print=false

            [gitlab]
            url=https://gitlab.example.com
            api_token=glpat-fromconfig0000
            timeout=5
            """)
        code = self.run_main('-c', config, 'analyze', '--project',
                             'acme/app', '--config', POLICY,
                             '--threshold', '0')
        self.assertEqual(0, code)
        self.assertEqual('', self.stdout.getvalue())
        conf = self.connection_configs[0]
        self.assertEqual('https://gitlab.example.com', conf['baseurl'])
        self.assertEqual('glpat-fromconfig0000', conf['api_token'])
        self.assertEqual(5.0, conf['timeout'])

    def test_print_overrides_config(self):
        self.addAppProject()
        config = self.writeConfig("""
            [pipecheck]
            print=false
            """)
        code = self.run_main('-c', config, 'analyze', '--project',
                             'acme/app', '--config', POLICY,
                             '--threshold', '0', '--print')
        self.assertEqual(0, code)
        self.assertIn('Project: acme/app', self.stdout.getvalue())

    def test_project_not_found(self):
        code = self.run_main('analyze', '--project', 'acme/missing',
                             '--config', POLICY, '--threshold', '0')
        self.assertEqual(1, code)
        self.assertEqual('', self.stdout.getvalue())

    def test_policy_not_found(self):
        code = self.run_main('analyze', '--project', 'acme/app',
                             '--config', os.path.join(self.tmp, 'none.yaml'),
                             '--threshold', '0')
        self.assertEqual(1, code)
        self.assertEqual([], self.connection_configs)

    def test_invalid_policy(self):
        code = self.run_main(
            'analyze', '--project', 'acme/app', '--config',
            os.path.join(FIXTURE_DIR, 'policies', 'invalid-level.yaml'),
            '--threshold', '0')
        self.assertEqual(1, code)

    def test_unwritable_output(self):
        self.addAppProject()
        code = self.run_main('analyze', '--project', 'acme/app',
                             '--config', POLICY, '--threshold', '0',
                             '--output',
                             os.path.join(self.tmp, 'missing', 'out.json'))
        self.assertEqual(1, code)

    def test_gitlab_url(self):
        self.addAppProject()
        code = self.run_main('analyze', '--gitlab-url',
                             'https://gitlab.example.com', '--project',
                             'acme/app', '--config', POLICY,
                             '--threshold', '0', '--branch', 'main')
        self.assertEqual(0, code)
        self.assertEqual('https://gitlab.example.com',
                         self.connection_configs[0]['baseurl'])

    def test_usage_errors(self):
        self.assertEqual(2, self.run_main())
        self.assertEqual(2, self.run_main('analyze', '--threshold', '50'))
        self.assertEqual(2, self.run_main('analyze', '--project', 'acme/app'))
        self.assertEqual(2, self.run_main('analyze', '--project', 'acme/app',
                                          '--threshold', '101'))
        self.assertEqual(2, self.run_main('analyze', '--project', 'acme/app',
                                          '--threshold', 'high'))

    def test_missing_config_file(self):
        code = self.run_main('-c', os.path.join(self.tmp, 'none.conf'),
                             'analyze', '--project', 'acme/app',
                             '--threshold', '0')
        self.assertEqual(1, code)
        self.assertIn('Unable to locate config file', self.stderr.getvalue())

    def test_invalid_gitlab_config(self):
        config = self.writeConfig("""
            [gitlab]
            retries=many
            """)
        code = self.run_main('-c', config, 'analyze', '--project',
                             'acme/app', '--threshold', '0')
        self.assertEqual(1, code)
        self.assertIn('Invalid [gitlab] configuration',
                      self.stderr.getvalue())

    def test_invalid_print_option(self):
        config = self.writeConfig("""
            [pipecheck]
            print=sometimes
            """)
        code = self.run_main('-c', config, 'analyze', '--project',
                             'acme/app', '--threshold', '0')
        self.assertEqual(1, code)


class TestGitlabConfig(BaseTestCase):
    def setUp(self):
        super(TestGitlabConfig, self).setUp()
        self.useFixture(fixtures.MonkeyPatch(
            'pipecheck.cmd.PipecheckApp.config_locations', []))

    def makeApp(self, *args):
        app = Pipecheck()
        app.parseArguments(list(args) + ['analyze', '--project', 'acme/app',
                                         '--threshold', '0'])
        app.readConfig()
        return app

    def test_token_from_environment(self):
        self.useFixture(fixtures.EnvironmentVariable('GITLAB_TOKEN',
                                                     'glpat-fromenv00000'))
        conf = self.makeApp().getGitlabConfig()
        self.assertEqual('glpat-fromenv00000', conf['api_token'])
        self.assertEqual('https://gitlab.com', conf['baseurl'])

    def test_explicit_values_win(self):
        self.useFixture(fixtures.EnvironmentVariable('GITLAB_TOKEN',
                                                     'glpat-fromenv00000'))
        conf = self.makeApp().getGitlabConfig(
            url='https://gitlab.example.com', token='glpat-explicit0000')
        self.assertEqual('glpat-explicit0000', conf['api_token'])
        self.assertEqual('https://gitlab.example.com', conf['baseurl'])

    def test_no_token(self):
        self.useFixture(fixtures.EnvironmentVariable('GITLAB_TOKEN'))
        conf = self.makeApp().getGitlabConfig()
        self.assertEqual('', conf['api_token'])

    def test_invalid_config(self):
        tmp = self.useFixture(fixtures.TempDir()).path
        path = os.path.join(tmp, 'pipecheck.conf')
        with open(path, 'w') as f:
            f.write('[gitlab]\nbackoff_factor=slow\n')
        app = self.makeApp('-c', path)
        self.assertRaises(ConfigurationError, app.getGitlabConfig)


class TestThresholdType(BaseTestCase):
    def test_valid(self):
        self.assertEqual(0.0, threshold_type('0'))
        self.assertEqual(87.5, threshold_type('87.5'))
        self.assertEqual(100.0, threshold_type('100'))

    def test_invalid(self):
        for value in ('-1', '100.1', 'all', ''):
            self.assertRaises(argparse.ArgumentTypeError, threshold_type,
                              value)
