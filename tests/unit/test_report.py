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

import json
import os

import fixtures

from pipecheck.analyzer import Analyzer
from pipecheck.configloader import PolicyLoader
from pipecheck import report
from tests.base import GitlabTestCase, load_yaml_fixture


class TestReport(GitlabTestCase):
    def analyze(self, policy='policies/full.yaml', threshold=50):
        policy = PolicyLoader().loadPolicyData(load_yaml_fixture(policy))
        return Analyzer(self.connection, policy).run(
            'acme/app', threshold=threshold)

    def test_text_report(self):
        self.addAppProject()
        text = report.format_text(self.analyze())
        lines = text.split('\n')
        self.assertIn('Project: acme/app', lines)
        self.assertIn('Container images must not use forbidden tags '
                      '(0.0% compliant)', lines)
        self.assertIn("    * Job 'deploy' uses forbidden tag 'latest' "
                      "(image: docker.io/alpine:latest)", lines)
        self.assertIn('Container images must come from authorized sources '
                      '(100.0% compliant)', lines)
        self.assertIn('  Authorized: 7', lines)
        self.assertIn('  Branches to Protect: 1', lines)
        self.assertIn('  Status: PASSED', lines)
        self.assertIn('Total (required: 50%)', text)
        self.assertIn('66.7%', text)
        self.assertNotIn('limited analysis', text)

    def test_failed_report(self):
        fake = self.connection.addProject('acme/app')
        fake.protected_branches = [{'name': 'main',
                                    'allow_force_push': True}]
        text = report.format_text(self.analyze(threshold=100))
        lines = text.split('\n')
        self.assertIn('CI configuration is missing: limited analysis',
                      lines)
        self.assertIn("    * Branch 'main' has non-compliant protection "
                      "settings", lines)
        self.assertIn('      - Force push is allowed (should be disabled)',
                      lines)
        self.assertIn('  Status: FAILED', lines)

    def test_skipped_controls(self):
        self.addAppProject()
        text = report.format_text(self.analyze('policies/disabled.yaml'))
        self.assertIn('Branch must be protected (skipped)', text)
        self.assertEqual(
            3, text.count('  Status: SKIPPED (disabled in configuration)'))
        self.assertIn('100.0%', text)

    def test_error_control(self):
        self.addAppProject()
        self.connection.gl_client.branches_error = 'Forbidden'
        text = report.format_text(self.analyze())
        self.assertIn('  Error: Forbidden', text.split('\n'))

    def test_tables(self):
        self.addAppProject()
        result = self.analyze()
        issues = report.issues_table(result.controls)
        self.assertEqual(3, len(issues.rows))
        self.assertEqual(['Container images must not use forbidden tags', 1],
                         issues.rows[0])
        compliance = report.compliance_table(result.controls,
                                             result.compliance, 50)
        self.assertEqual(4, len(compliance.rows))
        self.assertEqual(['Container images must not use forbidden tags',
                          '0.0%', 'FAIL'], compliance.rows[0])
        self.assertEqual(['Total (required: 50%)', '66.7%', 'PASS'],
                         compliance.rows[-1])

    def test_write_json(self):
        self.addAppProject()
        result = self.analyze()
        path = os.path.join(self.useFixture(fixtures.TempDir()).path,
                            'report.json')
        report.write_json(result, path)
        with open(path) as f:
            content = f.read()
        self.assertTrue(content.endswith('}\n'))
        data = json.loads(content)
        self.assertEqual(result.toDict(), data)
