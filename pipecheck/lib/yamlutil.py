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

import yaml
from yaml import YAMLError  # noqa: F401


try:
    from yaml import cyaml
    SafeLoader = cyaml.CSafeLoader
    SafeDumper = cyaml.CSafeDumper
except ImportError:
    SafeLoader = yaml.SafeLoader
    SafeDumper = yaml.SafeDumper


class Reference(list):
    """A GitLab CI ``!reference [job, key]`` tag.

    The referenced path is kept as-is; the expansion service resolves it
    in the merged configuration.
    """
    yaml_tag = u'!reference'

    @classmethod
    def from_yaml(cls, loader, node):
        if isinstance(node, yaml.SequenceNode):
            return cls(loader.construct_sequence(node, deep=True))
        return cls([loader.construct_scalar(node)])

    @classmethod
    def to_yaml(cls, dumper, data):
        return dumper.represent_sequence(cls.yaml_tag, list(data))


class CILoader(SafeLoader):
    pass


class CIDumper(SafeDumper):
    pass


CILoader.add_constructor(Reference.yaml_tag, Reference.from_yaml)
CIDumper.add_representer(Reference, Reference.to_yaml)


def safe_load(stream, *args, **kwargs):
    return yaml.load(stream, *args, Loader=CILoader, **kwargs)


def safe_dump(data, *args, **kwargs):
    kwargs.setdefault('default_flow_style', False)
    return yaml.dump(data, *args, Dumper=CIDumper, **kwargs)
