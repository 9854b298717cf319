# Copyright 2019 Red Hat, Inc.
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

from pipecheck.lib import yamlutil
from pipecheck.lib.variables import variables_from_yaml

# GitLab include types as reported by the ciConfig query
INCLUDE_COMPONENT = 'component'
INCLUDE_LOCAL = 'local'
INCLUDE_FILE = 'file'
INCLUDE_REMOTE = 'remote'
INCLUDE_TEMPLATE = 'template'

INCLUDE_TYPES = (
    INCLUDE_COMPONENT,
    INCLUDE_LOCAL,
    INCLUDE_FILE,
    INCLUDE_REMOTE,
    INCLUDE_TEMPLATE,
)

STATUS_VALID = 'VALID'
STATUS_INVALID = 'INVALID'

# Top-level keys of a CI configuration which are not jobs
GLOBAL_KEYWORDS = frozenset([
    'image',
    'services',
    'stages',
    'types',
    'before_script',
    'after_script',
    'variables',
    'cache',
    'include',
    'workflow',
    'default',
    'spec',
])


def image_name(value):
    """Return the image name of an ``image:`` value.

    The value is either a string or a mapping with a ``name`` key.
    """
    if value is None:
        return ''
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        name = value.get('name')
        if isinstance(name, str):
            return name
        return ''
    raise ValueError("Unsupported image definition: %r" % (value,))


def as_list(item):
    if not item:
        return []
    if isinstance(item, list):
        return item
    return [item]


class CIConfiguration(object):
    """A parsed .gitlab-ci.yml document."""
    log = logging.getLogger("pipecheck.CIConfiguration")

    def __init__(self, data=None):
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError("CI configuration must be a mapping, not %s" %
                             type(data).__name__)
        self.data = data

    @classmethod
    def fromYaml(cls, text):
        return cls(yamlutil.safe_load(text) or {})

    def __repr__(self):
        return '<CIConfiguration jobs=%d>' % len(self.jobs)

    @property
    def include(self):
        return as_list(self.data.get('include'))

    @property
    def stages(self):
        stages = self.data.get('stages')
        if not isinstance(stages, list):
            return []
        return [str(x) for x in stages]

    @property
    def jobs(self):
        return {str(name): body for name, body in self.data.items()
                if name not in GLOBAL_KEYWORDS and isinstance(body, dict)}

    def defaultImage(self):
        default = self.data.get('default')
        if isinstance(default, dict) and default.get('image'):
            return image_name(default.get('image'))
        return image_name(self.data.get('image'))

    def globalVariables(self, log=None):
        return variables_from_yaml(self.data.get('variables'),
                                   log or self.log)


class Include(object):
    """An include occurrence reported by the expansion service."""

    def __init__(self, location, type, context_project='', extra=None,
                 raw=None, blob=None):
        self.location = location or ''
        self.type = type or ''
        self.context_project = context_project or ''
        self.extra = extra or {}
        self.raw = raw
        self.blob = blob

    def __repr__(self):
        return '<Include %s %s>' % (self.type, self.location)

    @property
    def project(self):
        return self.extra.get('project') or ''

    @property
    def ref(self):
        return self.extra.get('ref') or ''

    @classmethod
    def fromDict(cls, data):
        return cls(
            location=data.get('location'),
            type=data.get('type'),
            context_project=data.get('contextProject'),
            extra=data.get('extra'),
            raw=data.get('raw'),
            blob=data.get('blob'),
        )


class MergedConfiguration(object):
    """The ciConfig response for a configuration."""

    def __init__(self, merged_yaml='', status=None, errors=None,
                 warnings=None, includes=None):
        self.merged_yaml = merged_yaml or ''
        self.status = status
        self.errors = errors or []
        self.warnings = warnings or []
        self.includes = includes or []

    def __repr__(self):
        return '<MergedConfiguration status=%s includes=%d>' % (
            self.status, len(self.includes))

    @property
    def valid(self):
        return not self.errors and self.status != STATUS_INVALID

    @classmethod
    def fromDict(cls, data):
        return cls(
            merged_yaml=data.get('mergedYaml'),
            status=data.get('status'),
            errors=data.get('errors'),
            warnings=data.get('warnings'),
            includes=[Include.fromDict(x)
                      for x in (data.get('includes') or [])],
        )


class PipelineConfiguration(object):
    """The original and merged views of a project's pipeline."""

    def __init__(self, original_text='', original=None, merged=None,
                 response=None):
        self.original_text = original_text or ''
        self.original = original
        self.merged = merged
        self.response = response

    def __repr__(self):
        return '<PipelineConfiguration %s>' % (self.response,)


class CatalogComponent(object):
    def __init__(self, id, name, include_path):
        self.id = id
        self.name = name
        self.include_path = include_path

    @classmethod
    def fromDict(cls, data):
        return cls(data.get('id'), data.get('name'),
                   data.get('includePath') or '')


class CatalogVersion(object):
    def __init__(self, name, components=None):
        self.name = name
        self.components = components or []

    @classmethod
    def fromDict(cls, data):
        components = (data.get('components') or {}).get('nodes') or []
        return cls(data.get('name') or '',
                   [CatalogComponent.fromDict(x) for x in components])


class CatalogResource(object):
    """A CI/CD catalog project publishing components."""

    def __init__(self, id, name, full_path, web_path, versions=None):
        self.id = id
        self.name = name
        self.full_path = full_path
        self.web_path = web_path
        self.versions = versions or []

    def __repr__(self):
        return '<CatalogResource %s>' % (self.full_path,)

    @classmethod
    def fromDict(cls, data):
        versions = (data.get('versions') or {}).get('nodes') or []
        return cls(data.get('id'), data.get('name') or '',
                   data.get('fullPath') or '', data.get('webPath') or '',
                   [CatalogVersion.fromDict(x) for x in versions])


class AccessLevelEntry(object):
    def __init__(self, access_level, description=''):
        self.access_level = access_level
        self.description = description

    def __repr__(self):
        return '<AccessLevelEntry %s>' % (self.access_level,)

    def toDict(self):
        return {
            'accessLevel': self.access_level,
            'accessLevelDescription': self.description,
        }

    @classmethod
    def fromDict(cls, data):
        level = data.get('access_level')
        return cls(level if level is not None else 0,
                   data.get('access_level_description') or '')


class ProtectionRule(object):
    """A protected branch rule as returned by the REST API."""

    def __init__(self, pattern, allow_force_push=False,
                 code_owner_approval_required=False,
                 merge_access_levels=None, push_access_levels=None):
        self.pattern = pattern
        self.allow_force_push = allow_force_push
        self.code_owner_approval_required = code_owner_approval_required
        self.merge_access_levels = merge_access_levels or []
        self.push_access_levels = push_access_levels or []

    def __repr__(self):
        return '<ProtectionRule %s>' % (self.pattern,)

    @classmethod
    def fromDict(cls, data):
        return cls(
            pattern=data.get('name'),
            allow_force_push=bool(data.get('allow_force_push')),
            code_owner_approval_required=bool(
                data.get('code_owner_approval_required')),
            merge_access_levels=[
                AccessLevelEntry.fromDict(x)
                for x in (data.get('merge_access_levels') or [])],
            push_access_levels=[
                AccessLevelEntry.fromDict(x)
                for x in (data.get('push_access_levels') or [])],
        )
