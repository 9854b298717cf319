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

import re2

from pipecheck.lib.imageref import DOCKER_HUB, UNKNOWN_REGISTRY
from pipecheck.lib.logutil import get_annotated_logger
from pipecheck.lib.wildcard import match_any, wildcard_match
from pipecheck.protection import BranchProtectionMerger

FULL_COMPLIANCE = 100.0
NO_COMPLIANCE = 0.0

ISSUE_UNPROTECTED = 'unprotected'
ISSUE_NON_COMPLIANT = 'non_compliant'

STATUS_AUTHORIZED = 'authorized'
STATUS_UNAUTHORIZED = 'unauthorized'

BRACED_VARIABLE = re2.compile(r'\$\{([a-zA-Z_][a-zA-Z0-9_]*)\}')


def normalize_variable_notation(text):
    """Rewrite ``${NAME}`` as ``$NAME``."""
    return BRACED_VARIABLE.sub(lambda m: '$' + m.group(1), text)


class ControlResult(object):
    def __init__(self, name, title):
        self.name = name
        self.title = title
        self.enabled = True
        self.skipped = False
        self.compliance = FULL_COMPLIANCE
        self.issues = []
        self.metrics = {}
        self.error = None

    def __repr__(self):
        return '<ControlResult %s compliance=%s skipped=%s>' % (
            self.name, self.compliance, self.skipped)

    def toDict(self):
        ret = {
            'enabled': self.enabled,
            'skipped': self.skipped,
            'compliance': self.compliance,
            'issues': self.issues,
            'metrics': self.metrics,
        }
        if self.error:
            ret['error'] = self.error
        return ret


class Control(object):
    """Base class of a policy control."""
    name = None
    title = None
    log = logging.getLogger("pipecheck.Control")

    def __init__(self, config):
        self.config = config

    @property
    def enabled(self):
        return self.config is not None and self.config.enabled

    def newResult(self):
        return ControlResult(self.name, self.title)

    def skippedResult(self):
        result = self.newResult()
        result.enabled = False
        result.skipped = True
        return result


class ImageControl(Control):
    """A control over the resolved images of a pipeline."""
    metric_keys = ()

    def run(self, analysis):
        log = get_annotated_logger(self.log, project=analysis.project)
        if not self.enabled:
            log.info("%s is disabled, skipping", self.title)
            return self.skippedResult()

        result = self.newResult()
        result.metrics = dict.fromkeys(('total',) + self.metric_keys +
                                       ('ciInvalid', 'ciMissing'), 0)
        if not analysis.ci_valid or analysis.ci_missing:
            result.compliance = NO_COMPLIANCE
            result.metrics['ciInvalid'] = int(not analysis.ci_valid)
            result.metrics['ciMissing'] = int(analysis.ci_missing)
            result.error = analysis.error
            return result

        for image in analysis.images:
            self.checkImage(image, result, log)
        result.metrics['total'] = len(analysis.images)
        if result.issues:
            result.compliance = NO_COMPLIANCE
        log.info("%s: %s images, %s issues", self.title,
                 len(analysis.images), len(result.issues))
        return result

    def checkImage(self, image, result, log):
        raise NotImplementedError()


class ForbiddenTagsControl(ImageControl):
    name = 'containerImageMustNotUseForbiddenTags'
    title = 'Container images must not use forbidden tags'
    log = logging.getLogger("pipecheck.ForbiddenTagsControl")
    metric_keys = ('usingForbiddenTags',)

    def checkImage(self, image, result, log):
        if match_any(image.tag, self.config.tags):
            log.debug("Job %s uses forbidden tag %s", image.job, image.tag)
            result.issues.append({
                'link': image.link,
                'tag': image.tag,
                'job': image.job,
            })
            result.metrics['usingForbiddenTags'] += 1


class AuthorizedSourcesControl(ImageControl):
    name = 'containerImageMustComeFromAuthorizedSources'
    title = 'Container images must come from authorized sources'
    log = logging.getLogger("pipecheck.AuthorizedSourcesControl")
    metric_keys = ('authorized', 'unauthorized')

    def imageStatus(self, image, log=None):
        log = log or self.log
        official = (self.config.trust_docker_hub_official_images and
                    image.registry == DOCKER_HUB and '/' not in image.name)
        if not self.config.trusted_urls and not official:
            return STATUS_UNAUTHORIZED

        if image.registry == UNKNOWN_REGISTRY:
            url = image.name
        else:
            url = image.registry + '/' + image.name
        if image.tag:
            url = url + ':' + image.tag
        url = url.strip('/')
        if not url:
            return STATUS_UNAUTHORIZED

        url = normalize_variable_notation(url)
        log.debug("Checking image %s as %s", image.link, url)
        for pattern in self.config.trusted_urls:
            if wildcard_match(normalize_variable_notation(pattern), url):
                return STATUS_AUTHORIZED
        if official:
            return STATUS_AUTHORIZED
        return STATUS_UNAUTHORIZED

    def checkImage(self, image, result, log):
        status = self.imageStatus(image, log)
        result.metrics[status] += 1
        if status == STATUS_UNAUTHORIZED:
            result.issues.append({
                'link': image.link,
                'status': status,
                'job': image.job,
            })


class BranchProtectionControl(Control):
    name = 'branchMustBeProtected'
    title = 'Branch must be protected'
    log = logging.getLogger("pipecheck.BranchProtectionControl")

    def run(self, project, branches, rules):
        """Check the protection of the branches that must be protected.

        :param ProjectInfo project: The analyzed project.
        :param list branches: All branch names.
        :param list rules: The project's ProtectionRule list.
        """
        log = get_annotated_logger(self.log, project=project)
        if not self.enabled:
            log.info("%s is disabled, skipping", self.title)
            return self.skippedResult()

        config = self.config
        merger = BranchProtectionMerger(config.name_patterns,
                                        config.default_must_be_protected,
                                        log=self.log)
        required = {}
        if branches:
            required = merger.merge(branches, rules, project.default_branch,
                                    project=project)

        result = self.newResult()
        unprotected = 0
        non_compliant = 0
        protected = 0
        for requirement in required.values():
            if not requirement.protected:
                unprotected += 1
                result.issues.append({
                    'type': ISSUE_UNPROTECTED,
                    'branchName': requirement.branch,
                })
                continue

            protected += 1
            issue = self.checkRequirement(requirement)
            if issue:
                non_compliant += 1
                result.issues.append(issue)

        result.metrics = {
            'branches': len(branches),
            'branchesToProtect': len(required),
            'unprotectedBranches': unprotected,
            'nonCompliantBranches': non_compliant,
            'totalProtectedBranches': protected,
            'projectsCorrectlyProtected': int(
                bool(required) and not unprotected and not non_compliant),
        }
        if result.issues:
            result.compliance = NO_COMPLIANCE
        log.info("%s: %s branches to protect, %s issues", self.title,
                 len(required), len(result.issues))
        return result

    def checkRequirement(self, requirement):
        config = self.config
        problems = []
        if not config.allow_force_push and requirement.allow_force_push:
            problems.append('allowForcePush')
        if (config.code_owner_approval_required and
                not requirement.code_owner_approval_required):
            problems.append('codeOwnerApprovalRequired')
        if self._levelTooLow(requirement.min_merge_access_level,
                             config.min_merge_access_level):
            problems.append('minMergeAccessLevel')
        if self._levelTooLow(requirement.min_push_access_level,
                             config.min_push_access_level):
            problems.append('minPushAccessLevel')
        if not problems:
            return None
        return {
            'type': ISSUE_NON_COMPLIANT,
            'branchName': requirement.branch,
            'problems': problems,
            'allowForcePush': requirement.allow_force_push,
            'codeOwnerApprovalRequired':
                requirement.code_owner_approval_required,
            'minMergeAccessLevel': requirement.min_merge_access_level,
            'authorizedMinMergeAccessLevel': config.min_merge_access_level,
            'minPushAccessLevel': requirement.min_push_access_level,
            'authorizedMinPushAccessLevel': config.min_push_access_level,
        }

    @staticmethod
    def _levelTooLow(level, minimum):
        return level != 0 and (minimum == 0 or minimum > level)

    def errorResult(self, error):
        result = self.newResult()
        result.compliance = NO_COMPLIANCE
        result.error = str(error)
        return result


def overall_compliance(results):
    """Mean compliance of the controls which ran."""
    ran = [r.compliance for r in results if not r.skipped]
    if not ran:
        return FULL_COMPLIANCE
    return sum(ran) / len(ran)
