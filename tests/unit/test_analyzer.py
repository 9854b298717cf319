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

from pipecheck.analyzer import Analyzer
from pipecheck.configloader import PolicyLoader
from pipecheck.exceptions import ProjectNotFoundError
from tests.base import GitlabTestCase, load_yaml_fixture

FORBIDDEN_TAGS = 'containerImageMustNotUseForbiddenTags'
AUTHORIZED_SOURCES = 'containerImageMustComeFromAuthorizedSources'
BRANCH_PROTECTION = 'branchMustBeProtected'


class AnalyzerTestCase(GitlabTestCase):
    policy_fixture = 'policies/full.yaml'

    def analyze(self, path='acme/app', threshold=100.0, branch=None):
        policy = PolicyLoader().loadPolicyData(
            load_yaml_fixture(self.policy_fixture))
        return Analyzer(self.connection, policy).run(
            path, branch=branch, threshold=threshold)


class TestAnalyzer(AnalyzerTestCase):
    def test_full_analysis(self):
        self.addAppProject()
        result = self.analyze(threshold=50)

        tags = result.getControl(FORBIDDEN_TAGS)
        self.assertEqual(0.0, tags.compliance)
        self.assertEqual([{'link': 'docker.io/alpine:latest',
                           'tag': 'latest', 'job': 'deploy'}], tags.issues)
        self.assertEqual(7, tags.metrics['total'])

        sources = result.getControl(AUTHORIZED_SOURCES)
        self.assertEqual(100.0, sources.compliance)
        self.assertEqual(7, sources.metrics['authorized'])

        branches = result.getControl(BRANCH_PROTECTION)
        self.assertEqual(100.0, branches.compliance)
        self.assertEqual(1, branches.metrics['projectsCorrectlyProtected'])

        self.assertAlmostEqual(200.0 / 3, result.compliance)
        self.assertTrue(result.passed)
        self.assertEqual(8, result.analysis.origin_metrics.job_total)
        self.assertIsNone(result.getControl('unknown'))

    def test_threshold(self):
        self.addAppProject()
        self.assertFalse(self.analyze(threshold=100).passed)
        self.assertTrue(self.analyze(threshold=0).passed)

    def test_missing_configuration(self):
        fake = self.connection.addProject('acme/app')
        fake.protected_branches = [{'name': 'main'}]
        result = self.analyze()
        self.assertTrue(result.analysis.ci_missing)
        tags = result.getControl(FORBIDDEN_TAGS)
        self.assertEqual(0.0, tags.compliance)
        self.assertEqual(1, tags.metrics['ciMissing'])
        sources = result.getControl(AUTHORIZED_SOURCES)
        self.assertEqual(0.0, sources.compliance)
        # Branch protection does not depend on the pipeline.
        self.assertEqual(100.0,
                         result.getControl(BRANCH_PROTECTION).compliance)
        self.assertAlmostEqual(100.0 / 3, result.compliance)
        self.assertFalse(result.passed)

    def test_branch_data_unavailable(self):
        self.addAppProject()
        self.connection.gl_client.branches_error = 'Forbidden'
        result = self.analyze(threshold=0)
        branches = result.getControl(BRANCH_PROTECTION)
        self.assertEqual(0.0, branches.compliance)
        self.assertFalse(branches.skipped)
        self.assertEqual('Forbidden', branches.error)

    def test_protection_rules_unavailable(self):
        self.addAppProject()
        self.connection.gl_client.protected_branches_error = 'Forbidden'
        result = self.analyze()
        branches = result.getControl(BRANCH_PROTECTION)
        self.assertEqual(0.0, branches.compliance)
        self.assertEqual([{'type': 'unprotected', 'branchName': 'main'}],
                         branches.issues)

    def test_project_not_found(self):
        self.assertRaises(ProjectNotFoundError, self.analyze, 'acme/missing')

    def test_to_dict(self):
        self.addAppProject()
        result = self.analyze(threshold=50)
        data = json.loads(json.dumps(result.toDict()))
        self.assertEqual('acme/app', data['projectPath'])
        self.assertEqual(1, data['projectId'])
        self.assertEqual('main', data['project']['analyzeBranch'])
        self.assertEqual([FORBIDDEN_TAGS, AUTHORIZED_SOURCES,
                          BRANCH_PROTECTION], list(data['controls'].keys()))
        self.assertEqual(50, data['threshold'])
        self.assertTrue(data['passed'])
        self.assertFalse(data['limitedAnalysis'])
        self.assertEqual(7, data['pipelineOriginMetrics']['originTotal'])
        self.assertEqual(1,
                         data['pipelineOriginMetrics']['originGitLabCatalog'])
        self.assertEqual(7, data['pipelineImageMetrics']['total'])
        self.assertEqual(8, len(data['jobs']))


class TestDisabledControls(AnalyzerTestCase):
    policy_fixture = 'policies/disabled.yaml'

    def test_all_skipped(self):
        self.addAppProject()
        self.connection.gl_client.branches_error = 'Forbidden'
        result = self.analyze()
        for control in result.controls:
            self.assertTrue(control.skipped)
        self.assertEqual(100.0, result.compliance)
        self.assertTrue(result.passed)
