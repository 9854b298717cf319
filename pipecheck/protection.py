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

"""Reduce overlapping protected branch rules to one posture per branch.

When several rules match a branch GitLab applies the most permissive
one, so each field converges to its most permissive observed value.
"""

import logging

from pipecheck.lib.logutil import get_annotated_logger
from pipecheck.lib.wildcard import match_any, WildcardPattern
from pipecheck.model import AccessLevel, BranchProtectionRequirement


def lower_minimum(current, level):
    """Lower a minimum access level.

    No access (0) is the absence of a restriction and never displaces a
    real minimum; it is only kept while nothing else was seen.
    """
    if current == AccessLevel.NO_ACCESS:
        return level
    if level != AccessLevel.NO_ACCESS and level < current:
        return level
    return current


class BranchProtectionMerger(object):
    log = logging.getLogger("pipecheck.BranchProtectionMerger")

    def __init__(self, name_patterns=None, default_must_be_protected=True,
                 log=None):
        self.name_patterns = [WildcardPattern(p)
                              for p in (name_patterns or [])]
        self.default_must_be_protected = default_must_be_protected
        self.log = log or self.log

    def requiredBranches(self, branches, default_branch):
        """Return the branches which must be protected, by name."""
        required = {}
        if self.default_must_be_protected and default_branch:
            required[default_branch] = BranchProtectionRequirement(
                default_branch, default=True)
        for branch in branches:
            if branch in required:
                continue
            if match_any(branch, self.name_patterns):
                required[branch] = BranchProtectionRequirement(
                    branch, default=(branch == default_branch))
        return required

    def merge(self, branches, rules, default_branch, project=None):
        """Compute the effective protection of every required branch.

        :param list branches: All branch names of the repository.
        :param list rules: The project's ProtectionRule list.
        :param str default_branch: The repository default branch.
        :returns: A dict of branch name to BranchProtectionRequirement.
        """
        log = get_annotated_logger(self.log, project=project)
        required = self.requiredBranches(branches, default_branch)
        patterns = [(rule, WildcardPattern(rule.pattern or ''))
                    for rule in rules]
        for requirement in required.values():
            for rule, pattern in patterns:
                if pattern.match(requirement.branch):
                    self.applyRule(requirement, rule)
            log.debug("Branch %s: protected=%s pattern=%s",
                      requirement.branch, requirement.protected,
                      requirement.pattern)
        return required

    @staticmethod
    def applyRule(requirement, rule):
        requirement.protected = True
        requirement.pattern = rule.pattern
        requirement.allow_force_push = (requirement.allow_force_push or
                                        rule.allow_force_push)
        if requirement.code_owner_approval_required:
            requirement.code_owner_approval_required = (
                rule.code_owner_approval_required)
        for entry in rule.merge_access_levels:
            requirement.merge_access_levels.append(entry)
            requirement.min_merge_access_level = lower_minimum(
                requirement.min_merge_access_level, entry.access_level)
        for entry in rule.push_access_levels:
            requirement.push_access_levels.append(entry)
            requirement.min_push_access_level = lower_minimum(
                requirement.min_push_access_level, entry.access_level)
