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

import logging

from pipecheck.driver.gitlab.gitlabconnection import GitlabAPIClientException
from pipecheck.lib.logutil import get_annotated_logger
from pipecheck.pipeline import PipelineResolver
from pipecheck.policy import (
    AuthorizedSourcesControl,
    BranchProtectionControl,
    ForbiddenTagsControl,
    overall_compliance,
)


class AnalysisResult(object):
    def __init__(self, project, analysis, controls, threshold):
        self.project = project
        self.analysis = analysis
        self.controls = controls
        self.threshold = threshold
        self.compliance = overall_compliance(controls)

    def __repr__(self):
        return '<AnalysisResult %s compliance=%s>' % (
            self.project.path, self.compliance)

    @property
    def passed(self):
        return self.compliance >= self.threshold

    def getControl(self, name):
        for control in self.controls:
            if control.name == name:
                return control
        return None

    def toDict(self):
        ret = {
            'projectPath': self.project.path,
            'projectId': self.project.id,
            'project': self.project.toDict(),
        }
        ret.update(self.analysis.toDict())
        ret['controls'] = {c.name: c.toDict() for c in self.controls}
        ret['threshold'] = self.threshold
        ret['compliance'] = self.compliance
        ret['passed'] = self.passed
        return ret


class Analyzer(object):
    """Run every policy control against one project."""
    log = logging.getLogger("pipecheck.Analyzer")

    def __init__(self, connection, policy):
        self.connection = connection
        self.policy = policy

    def run(self, project_path, branch=None, threshold=100.0):
        """Analyze a project.

        :raises ProjectNotFoundError: When the project does not exist.
        :returns: An :py:class:`AnalysisResult`.
        """
        log = get_annotated_logger(self.log, project=project_path)
        log.info("Starting pipeline analysis on %s", self.connection.baseurl)
        project = self.connection.getProject(project_path, branch)

        analysis = PipelineResolver(self.connection, project).resolve()
        if analysis.limited:
            log.info("Limited analysis: valid=%s missing=%s",
                     analysis.ci_valid, analysis.ci_missing)

        controls = [
            ForbiddenTagsControl(self.policy.forbidden_tags).run(analysis),
            AuthorizedSourcesControl(
                self.policy.authorized_sources).run(analysis),
            self.runBranchProtection(project),
        ]
        result = AnalysisResult(project, analysis, controls, threshold)
        log.info("Analysis completed with %.1f%% compliance",
                 result.compliance)
        return result

    def runBranchProtection(self, project):
        control = BranchProtectionControl(self.policy.branch_protection)
        if not control.enabled:
            return control.skippedResult()
        log = get_annotated_logger(self.log, project=project)
        try:
            branches, rules = self.connection.getBranchProtection(project)
        except GitlabAPIClientException as e:
            log.error("Protection data collection failed: %s", e)
            return control.errorResult(e)
        return control.run(project, branches, rules)
