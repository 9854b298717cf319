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

import copy
import hashlib
import json

# Origin kinds
ORIGIN_HARDCODED = 'hardcoded'
ORIGIN_COMPONENT = 'component'
ORIGIN_LOCAL = 'local'
ORIGIN_PROJECT = 'project'
ORIGIN_REMOTE = 'remote'
ORIGIN_TEMPLATE = 'template'

ORIGIN_KINDS = (
    ORIGIN_HARDCODED,
    ORIGIN_COMPONENT,
    ORIGIN_LOCAL,
    ORIGIN_PROJECT,
    ORIGIN_REMOTE,
    ORIGIN_TEMPLATE,
)


class AccessLevel(object):
    """GitLab role access levels."""
    NO_ACCESS = 0
    MINIMAL = 5
    GUEST = 10
    PLANNER = 15
    REPORTER = 20
    DEVELOPER = 30
    MAINTAINER = 40
    OWNER = 50
    ADMIN = 60

    ALL = (NO_ACCESS, MINIMAL, GUEST, PLANNER, REPORTER, DEVELOPER,
           MAINTAINER, OWNER, ADMIN)

    NAMES = {
        NO_ACCESS: 'No one',
        MINIMAL: 'Minimal access',
        GUEST: 'Guest',
        PLANNER: 'Planner',
        REPORTER: 'Reporter',
        DEVELOPER: 'Developer',
        MAINTAINER: 'Maintainer',
        OWNER: 'Owner',
        ADMIN: 'Admin',
    }

    @classmethod
    def describe(cls, level):
        return cls.NAMES.get(level, str(level))


class ProjectInfo(object):
    """The analyzed project as seen by the API."""

    def __init__(self, path):
        self.id = None
        self.path = path
        self.name = None
        self.default_branch = None
        self.analyze_branch = None
        self.ci_config_path = '.gitlab-ci.yml'
        self.latest_sha = 'HEAD'
        self.archived = False
        self.visibility = None
        self.group_id = None

    def __repr__(self):
        return '<ProjectInfo %s>' % (self.path,)

    @property
    def in_group(self):
        return bool(self.group_id)

    @property
    def ref(self):
        return self.analyze_branch or self.default_branch

    def toDict(self):
        return {
            'id': self.id,
            'path': self.path,
            'name': self.name,
            'defaultBranch': self.default_branch,
            'analyzeBranch': self.ref,
            'ciConfigPath': self.ci_config_path,
            'archived': self.archived,
        }


class Job(object):
    """A job of the merged pipeline."""

    def __init__(self, name, extends=None, lines=0):
        self.name = name
        self.extends = list(extends or [])
        self.lines = lines
        self.hardcoded = False
        self.overridden = False

    def __repr__(self):
        return '<Job %s hardcoded=%s overridden=%s>' % (
            self.name, self.hardcoded, self.overridden)

    def copy(self):
        return copy.copy(self)

    def toDict(self):
        return {
            'name': self.name,
            'extends': self.extends,
            'lines': self.lines,
            'hardcoded': self.hardcoded,
            'overridden': self.overridden,
        }


def fingerprint(location, type, project):
    """A stable hash of an include's identity.

    The same include hashes identically whether it was read from the
    original configuration or from the expansion service's include list.
    """
    data = json.dumps({
        'location': location or '',
        'type': type or '',
        'project': project or '',
    }, sort_keys=True)
    return hashlib.sha256(data.encode('utf8')).hexdigest()[:16]


class IncludeOrigin(object):
    """The normalized location/type/parent-project triple of an include."""

    def __init__(self, location='', type='', project=''):
        self.location = location or ''
        self.type = type or ''
        self.project = project or ''

    def __repr__(self):
        return '<IncludeOrigin %s %s %s>' % (
            self.type, self.location, self.project)

    def __eq__(self, other):
        if not isinstance(other, IncludeOrigin):
            return False
        return (self.location == other.location and
                self.type == other.type and
                self.project == other.project)

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash((self.location, self.type, self.project))

    @property
    def fingerprint(self):
        return fingerprint(self.location, self.type, self.project)

    def toDict(self):
        return {
            'location': self.location,
            'type': self.type,
            'project': self.project,
        }


class ComponentInfo(object):
    """Catalog details of a component include."""

    def __init__(self, repo_full_path='', repo_web_path='', repo_name='',
                 component_name='', include_path='', latest_version=''):
        self.repo_full_path = repo_full_path
        self.repo_web_path = repo_web_path
        self.repo_name = repo_name
        self.component_name = component_name
        self.include_path = include_path
        self.latest_version = latest_version

    def toDict(self):
        return {
            'repoFullPath': self.repo_full_path,
            'repoWebPath': self.repo_web_path,
            'repoName': self.repo_name,
            'componentName': self.component_name,
            'componentIncludePath': self.include_path,
            'componentLatestVersion': self.latest_version,
        }


class Origin(object):
    """One include occurrence, or the synthetic hardcoded bucket."""

    def __init__(self, kind, include_origin=None):
        self.kind = kind
        self.include_origin = include_origin or IncludeOrigin()
        self.from_catalog = False
        self.component = None
        self.version = ''
        self.up_to_date = False
        self.nested = False
        self.jobs = []

    def __repr__(self):
        return '<Origin %s %s jobs=%d>' % (
            self.kind, self.include_origin.location, len(self.jobs))

    @property
    def fingerprint(self):
        return self.include_origin.fingerprint

    @property
    def outdated(self):
        return self.from_catalog and not self.up_to_date

    def toDict(self):
        return {
            'type': self.kind,
            'location': self.include_origin.location,
            'includeType': self.include_origin.type,
            'project': self.include_origin.project,
            'fingerprint': self.fingerprint,
            'fromCatalog': self.from_catalog,
            'component': self.component.toDict() if self.component else None,
            'version': self.version,
            'upToDate': self.up_to_date,
            'nested': self.nested,
            'jobs': [job.name for job in self.jobs],
        }


class OriginMetrics(object):
    def __init__(self):
        self.job_total = 0
        self.job_hardcoded = 0
        self.origin_total = 0
        self.origin_component = 0
        self.origin_local = 0
        self.origin_project = 0
        self.origin_remote = 0
        self.origin_template = 0
        self.origin_catalog = 0
        self.origin_outdated = 0

    @classmethod
    def compute(cls, jobs, hardcoded, origins):
        """Compute metrics from a job table and the origin list.

        :param dict jobs: Job name to Job.
        :param dict hardcoded: Hardcoded candidate name to current flag.
        :param list origins: The Origin list, hardcoded bucket included.
        """
        metrics = cls()
        metrics.job_total = len(jobs)
        metrics.job_hardcoded = len([x for x in hardcoded.values() if x])
        metrics.origin_total = len(origins)
        for origin in origins:
            attr = 'origin_%s' % origin.kind
            if origin.kind != ORIGIN_HARDCODED and hasattr(metrics, attr):
                setattr(metrics, attr, getattr(metrics, attr) + 1)
            if origin.from_catalog:
                metrics.origin_catalog += 1
            if origin.outdated:
                metrics.origin_outdated += 1
        return metrics

    def toDict(self):
        return {
            'jobTotal': self.job_total,
            'jobHardcoded': self.job_hardcoded,
            'originTotal': self.origin_total,
            'originComponent': self.origin_component,
            'originLocal': self.origin_local,
            'originProject': self.origin_project,
            'originRemote': self.origin_remote,
            'originTemplate': self.origin_template,
            'originGitLabCatalog': self.origin_catalog,
            'originOutdated': self.origin_outdated,
        }


class ResolvedImage(object):
    """The image a job runs, after variable substitution."""

    def __init__(self, job, original, link, registry, name, tag):
        self.job = job
        self.original = original
        self.link = link
        self.registry = registry
        self.name = name
        self.tag = tag

    def __repr__(self):
        return '<ResolvedImage %s job=%s>' % (self.link, self.job)

    def toDict(self):
        return {
            'job': self.job,
            'original': self.original,
            'link': self.link,
            'registry': self.registry,
            'name': self.name,
            'tag': self.tag,
        }


class BranchProtectionRequirement(object):
    """The effective protection of a branch that must be protected."""

    def __init__(self, branch, default=False):
        self.branch = branch
        self.default = default
        self.protected = False
        self.pattern = None
        # Most restrictive baseline; matching rules relax it.
        self.allow_force_push = False
        self.code_owner_approval_required = True
        self.min_merge_access_level = AccessLevel.NO_ACCESS
        self.min_push_access_level = AccessLevel.NO_ACCESS
        self.merge_access_levels = []
        self.push_access_levels = []

    def __repr__(self):
        return '<BranchProtectionRequirement %s protected=%s>' % (
            self.branch, self.protected)

    def toDict(self):
        return {
            'branchName': self.branch,
            'default': self.default,
            'protected': self.protected,
            'pattern': self.pattern,
            'allowForcePush': self.allow_force_push,
            'codeOwnerApprovalRequired': self.code_owner_approval_required,
            'minMergeAccessLevel': self.min_merge_access_level,
            'minPushAccessLevel': self.min_push_access_level,
            'mergeAccessLevels': [x.toDict()
                                  for x in self.merge_access_levels],
            'pushAccessLevels': [x.toDict() for x in self.push_access_levels],
        }


class PipelineAnalysis(object):
    """The resolved pipeline dataset consumed by the policy controls."""

    def __init__(self, project):
        self.project = project
        self.ci_valid = True
        self.ci_missing = False
        self.limited = False
        self.jobs = {}
        self.origins = []
        self.images = []
        self.origin_metrics = OriginMetrics()
        self.error = None

    def __repr__(self):
        return '<PipelineAnalysis %s valid=%s missing=%s limited=%s>' % (
            self.project.path, self.ci_valid, self.ci_missing, self.limited)

    def markInvalid(self, error=None):
        self.ci_valid = False
        self.limited = True
        self.error = error

    def markMissing(self, error=None):
        self.ci_missing = True
        self.limited = True
        self.error = error

    def toDict(self):
        return {
            'ciValid': self.ci_valid,
            'ciMissing': self.ci_missing,
            'limitedAnalysis': self.limited,
            'pipelineOriginMetrics': self.origin_metrics.toDict(),
            'pipelineImageMetrics': {'total': len(self.images)},
            'jobs': [job.toDict() for job in self.jobs.values()],
            'origins': [origin.toDict() for origin in self.origins],
            'images': [image.toDict() for image in self.images],
        }
