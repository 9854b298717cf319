# Copyright 2024 Acme Gating, LLC
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

# Helpers for mutating the camelCase keys of the policy file into
# snake_case python attribute names.

import re

import voluptuous as vs


UNDEFINED = object()
_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])([A-Z])')


def to_snake(name):
    return _CAMEL_BOUNDARY.sub(r'_\1', name).replace('-', '_').lower()


def assemble(*schemas):
    """Merge any number of voluptuous schemas into a single schema.  The
    input schemas must all be dictionary-based.

    """
    ret = vs.Schema({})
    for x in schemas:
        ret = ret.extend(x.schema)
    return ret


class Required(vs.Required):
    """Require an attribute and mutate its name

    ``minMergeAccessLevel`` becomes ``min_merge_access_level`` so the
    output of the validator can be used to set python attributes.

    """
    def __init__(self, schema, default=vs.schema_builder.UNDEFINED,
                 output=None):
        if not isinstance(schema, str):
            raise Exception("Only strings are supported")
        super().__init__(schema, default=default)
        if output is None:
            output = to_snake(schema)
        self.output = output

    def __call__(self, data):
        # Superclass ensures that data==schema
        super().__call__(data)
        return self.output


class Optional(vs.Optional):
    """Mark an attribute optional and mutate its name

    Works with Nullable to produce None for absent attributes.
    """
    def __init__(self, schema, default=UNDEFINED, output=None):
        if not isinstance(schema, str):
            raise Exception("Only strings are supported")
        super().__init__(schema, default=default)
        if output is None:
            output = to_snake(schema)
        self.output = output

    def __call__(self, data):
        # Superclass ensures that data==schema
        super().__call__(data)
        return self.output


class Nullable:
    """Set the output value to None when no input is supplied.

    When used with Optional, if no input value is supplied, this will
    set the output to None without also accepting None as an input
    value.

    """
    def __init__(self, schema):
        self.schema = vs.Schema(schema)

    def __call__(self, v):
        if v is UNDEFINED:
            return None
        return self.schema(v)
