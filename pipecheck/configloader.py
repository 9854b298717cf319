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
import os

import voluptuous as vs

from pipecheck.exceptions import PolicyConfigurationError
from pipecheck.lib import yamlutil
from pipecheck.lib.voluputil import Required, Optional, Nullable, assemble
from pipecheck.model import AccessLevel

POLICY_FILENAMES = (
    '.pipecheck.yaml',
    '.pipecheck.yml',
    'pipecheck.yaml',
    'pipecheck.yml',
)

FORBIDDEN_TAGS = 'containerImageMustNotUseForbiddenTags'
AUTHORIZED_SOURCES = 'containerImageMustComeFromAuthorizedSources'
BRANCH_PROTECTION = 'branchMustBeProtected'

access_level = vs.In(AccessLevel.ALL,
                     msg='access level must be one of %s' %
                     ', '.join(str(x) for x in AccessLevel.ALL))

common_control = vs.Schema({
    Required('enabled'): bool,
})

forbidden_tags = vs.Schema({
    Optional('tags', default=list): [str],
})

authorized_sources = vs.Schema({
    Optional('trustedUrls', default=list): [str],
    Optional('trustDockerHubOfficialImages', default=True): bool,
})

branch_protection = vs.Schema({
    Optional('namePatterns', default=list): [str],
    Optional('defaultMustBeProtected', default=True): bool,
    Optional('allowForcePush', default=False): bool,
    Optional('codeOwnerApprovalRequired', default=False): bool,
    Optional('minMergeAccessLevel', default=0): access_level,
    Optional('minPushAccessLevel', default=0): access_level,
})


class ControlConfig(object):
    schema = common_control
    section = None

    def __init__(self, conf):
        try:
            self.__dict__.update(self.schema(conf))
        except vs.Invalid as e:
            raise vs.Invalid(e.msg, path=['controls', self.section] + e.path)

    def __repr__(self):
        return '<%s enabled=%s>' % (self.__class__.__name__, self.enabled)


class ForbiddenTagsConfig(ControlConfig):
    schema = assemble(common_control, forbidden_tags)
    section = FORBIDDEN_TAGS


class AuthorizedSourcesConfig(ControlConfig):
    schema = assemble(common_control, authorized_sources)
    section = AUTHORIZED_SOURCES


class BranchProtectionConfig(ControlConfig):
    schema = assemble(common_control, branch_protection)
    section = BRANCH_PROTECTION


class PolicyConfig(object):
    """A validated policy file.

    Each control attribute is None when its section is absent.
    """
    schema = vs.Schema({
        Optional('version', default='1.0'): vs.Coerce(str),
        Optional('controls', default=dict): dict,
    })
    # Sections of controls this tool does not implement are ignored.
    controls_schema = vs.Schema({
        Optional(FORBIDDEN_TAGS, output='forbidden_tags'): Nullable(dict),
        Optional(AUTHORIZED_SOURCES,
                 output='authorized_sources'): Nullable(dict),
        Optional(BRANCH_PROTECTION,
                 output='branch_protection'): Nullable(dict),
    }, extra=vs.REMOVE_EXTRA)

    def __init__(self, conf):
        self.__dict__.update(self.schema(conf))
        try:
            controls = self.controls_schema(self.controls)
        except vs.Invalid as e:
            raise vs.Invalid(e.msg, path=['controls'] + e.path)
        self.forbidden_tags = self._section(
            ForbiddenTagsConfig, controls['forbidden_tags'])
        self.authorized_sources = self._section(
            AuthorizedSourcesConfig, controls['authorized_sources'])
        self.branch_protection = self._section(
            BranchProtectionConfig, controls['branch_protection'])

    @staticmethod
    def _section(cls, conf):
        if conf is None:
            return None
        return cls(conf)

    def __repr__(self):
        return '<PolicyConfig version=%s>' % (self.version,)


class PolicyLoader(object):
    log = logging.getLogger("pipecheck.PolicyLoader")

    def findPolicyFile(self, directory=None):
        directory = directory or os.getcwd()
        for name in POLICY_FILENAMES:
            path = os.path.join(directory, name)
            if os.path.isfile(path):
                return path
        return None

    def loadPolicy(self, path=None):
        """Load and validate a policy file.

        :param str path: The policy file; searched in the working
            directory when omitted.
        :returns: A tuple of (PolicyConfig, path).
        """
        if path is None:
            path = self.findPolicyFile()
            if path is None:
                raise PolicyConfigurationError(
                    os.getcwd(), "no policy file found (looked for %s)" %
                    ', '.join(POLICY_FILENAMES))
        path = os.path.expanduser(path)
        try:
            with open(path) as f:
                data = yamlutil.safe_load(f)
        except OSError as e:
            raise PolicyConfigurationError(path, e.strerror or str(e))
        except yamlutil.YAMLError as e:
            raise PolicyConfigurationError(path, e)
        return self.loadPolicyData(data, path), path

    def loadPolicyData(self, data, path='<string>'):
        if data is None:
            data = {}
        try:
            policy = PolicyConfig(data)
        except vs.Invalid as e:
            raise PolicyConfigurationError(path, e)
        self.log.debug("Loaded policy %s from %s", policy, path)
        return policy
