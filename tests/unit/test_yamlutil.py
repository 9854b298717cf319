# Copyright 2021 Acme Gating, LLC
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

import testtools

from pipecheck.lib import yamlutil
from tests.base import BaseTestCase


class TestYamlUtil(BaseTestCase):
    def test_load_normal_data(self):
        expected = {'foo': 'bar'}
        data = 'foo: bar\n'
        out = yamlutil.safe_load(data)
        self.assertEqual(out, expected)

    def test_load_reference(self):
        data = ("test:\n"
                "  script:\n"
                "    - !reference [.setup, script]\n")
        out = yamlutil.safe_load(data)
        ref = out['test']['script'][0]
        self.assertIsInstance(ref, yamlutil.Reference)
        self.assertEqual(['.setup', 'script'], list(ref))

    def test_dump_normal_data(self):
        data = {'foo': 'bar'}
        expected = 'foo: bar\n'
        out = yamlutil.safe_dump(data)
        self.assertEqual(out, expected)

    def test_dump_reference(self):
        data = {'script': [yamlutil.Reference(['.setup', 'script'])]}
        out = yamlutil.safe_dump(data)
        self.assertIn('!reference', out)
        self.assertEqual(data, yamlutil.safe_load(out))

    def test_unsafe_tags_rejected(self):
        data = "foo: !!python/object/apply:os.system ['true']\n"
        with testtools.ExpectedException(yamlutil.YAMLError):
            yamlutil.safe_load(data)
