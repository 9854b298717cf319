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

"""Textual substitution of CI variables across ranked scopes.

Three token forms are recognized: ``$NAME``, ``${NAME}`` and
``%NAME%``.  A token is replaced by the value found in the highest
ranked scope defining it; tokens no scope defines are kept verbatim so
that later stages can see them.
"""

import logging

import re2

VARIABLE_TOKEN = re2.compile(
    r'(\$[a-zA-Z_][a-zA-Z0-9_]*|\$\{[a-zA-Z_][a-zA-Z0-9_]*\}'
    r'|%[a-zA-Z_][a-zA-Z0-9_]*%)')
MAX_PASSES = 5

PREDEFINED_VARIABLES = {
    'CI_TEMPLATE_REGISTRY_HOST': 'registry.gitlab.com',
    'SECURE_ANALYZERS_PREFIX': '',
}

# Lookup order, highest precedence first.
SCOPE_ORDER = ('project', 'group', 'instance', 'job', 'pipeline',
               'predefined')


def token_name(token):
    return token.strip('$%{}')


def variable_value(value, log=None):
    """Render a YAML variable definition as a string.

    Values may be scalars or a mapping carrying ``value`` (the long
    form with ``description``/``options``).  Anything else renders as
    an empty string.
    """
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (str, int, float)):
        return str(value)
    if isinstance(value, dict):
        return variable_value(value.get('value'), log)
    if log:
        log.warning("Unsupported variable value type %s", type(value))
    return ''


def variables_from_yaml(variables, log=None):
    """Convert a ``variables:`` section into a name to value mapping."""
    if not isinstance(variables, dict):
        return {}
    return {str(name): variable_value(value, log)
            for name, value in variables.items()}


class VariableScopes(object):
    """The ranked variable layers visible to a job."""
    log = logging.getLogger("pipecheck.VariableScopes")

    def __init__(self, project=None, group=None, instance=None, job=None,
                 pipeline=None, predefined=None):
        self.project = dict(project or {})
        self.group = dict(group or {})
        self.instance = dict(instance or {})
        self.job = dict(job or {})
        self.pipeline = dict(pipeline or {})
        if predefined is None:
            predefined = PREDEFINED_VARIABLES
        self.predefined = dict(predefined)

    def __repr__(self):
        return '<VariableScopes %s>' % ', '.join(
            '%s=%d' % (scope, len(getattr(self, scope)))
            for scope in SCOPE_ORDER)

    def withJob(self, job_variables):
        """Return a copy of these scopes with a job layer."""
        return VariableScopes(project=self.project, group=self.group,
                              instance=self.instance, job=job_variables,
                              pipeline=self.pipeline,
                              predefined=self.predefined)

    def lookup(self, name):
        for scope in SCOPE_ORDER:
            values = getattr(self, scope)
            if name in values:
                return values[name]
        return None

    def _substitute(self, text):
        def replace(match):
            token = match.group(0)
            value = self.lookup(token_name(token))
            if value is None:
                return token
            return value
        return VARIABLE_TOKEN.sub(replace, text)

    def resolve(self, text):
        previous = None
        current = text
        passes = 0
        while current != previous and passes < MAX_PASSES:
            previous = current
            current = self._substitute(previous)
            passes += 1
        return current


def resolve_variables(text, scopes):
    return scopes.resolve(text)
