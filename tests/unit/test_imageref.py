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

from pipecheck.lib.imageref import (
    DEFAULT_TAG,
    DOCKER_HUB,
    extract_variables,
    ImageReference,
    parse_image_reference,
    UNKNOWN_REGISTRY,
)
from tests.base import BaseTestCase


class TestLiteralImages(BaseTestCase):
    def assertParsed(self, link, expected_link, registry, name, tag):
        self.assertEqual(ImageReference(expected_link, registry, name, tag),
                         parse_image_reference(link, log=self.log))

    def test_explicit_docker_hub(self):
        self.assertParsed('docker.io/node:latest',
                          'docker.io/node:latest', 'docker.io', 'node',
                          'latest')

    def test_implied_registry(self):
        self.assertParsed('alpine', 'docker.io/alpine', DOCKER_HUB,
                          'alpine', DEFAULT_TAG)
        self.assertParsed('python:3.12', 'docker.io/python:3.12',
                          DOCKER_HUB, 'python', '3.12')
        self.assertParsed('library/ubuntu:22.04',
                          'docker.io/library/ubuntu:22.04', DOCKER_HUB,
                          'library/ubuntu', '22.04')

    def test_registry_with_port(self):
        self.assertParsed('registry.example.com:5000/team/app:1.0',
                          'registry.example.com:5000/team/app:1.0',
                          'registry.example.com:5000', 'team/app', '1.0')
        self.assertParsed('localhost:5000/app', 'localhost:5000/app',
                          'localhost:5000', 'app', DEFAULT_TAG)

    def test_round_trip(self):
        for link in ('docker.io/node:latest',
                     'registry.gitlab.com/group/project/image:1.2.3',
                     'quay.io/org/tool:v2'):
            ref = parse_image_reference(link)
            self.assertEqual(link, '%s/%s:%s' % (ref.registry, ref.name,
                                                 ref.tag))
        ref = parse_image_reference('alpine:3.19')
        self.assertEqual('alpine:3.19', '%s:%s' % (ref.name, ref.tag))

    def test_empty_name(self):
        self.assertParsed(':latest', ':latest', UNKNOWN_REGISTRY,
                          ':latest', '')


class TestVariableImages(BaseTestCase):
    def assertParsed(self, link, registry, name, tag):
        # Variable-laden references keep the link as written.
        self.assertEqual(ImageReference(link, registry, name, tag),
                         parse_image_reference(link, log=self.log))

    def test_image_and_tag_variables(self):
        self.assertParsed('$CI_REGISTRY_IMAGE:$TAG', UNKNOWN_REGISTRY,
                          '$CI_REGISTRY_IMAGE', '$TAG')

    def test_literal_registry_path(self):
        self.assertParsed('registry.example.com/team/$SERVICE:$VERSION',
                          'registry.example.com', 'team/$SERVICE',
                          '$VERSION')
        self.assertParsed('registry.example.com/$IMAGE',
                          'registry.example.com', '$IMAGE', '')

    def test_single_variable(self):
        self.assertParsed('$IMAGE', UNKNOWN_REGISTRY, '$IMAGE', '')
        self.assertParsed('$REGISTRY/app:1.0', UNKNOWN_REGISTRY,
                          '$REGISTRY/app', '1.0')
        self.assertParsed('${CI_REGISTRY}/app:1', UNKNOWN_REGISTRY,
                          '${CI_REGISTRY}/app', '1')

    def test_double_colon(self):
        self.assertParsed('$IMAGE::$TAG', UNKNOWN_REGISTRY, '$IMAGE',
                          '$TAG')

    def test_double_slash(self):
        self.assertParsed('$REGISTRY//app:1', UNKNOWN_REGISTRY,
                          '$REGISTRY/app', '1')

    def test_leading_slash(self):
        self.assertParsed('/$IMAGE:1.0', UNKNOWN_REGISTRY, '$IMAGE', '1.0')

    def test_three_variables(self):
        self.assertParsed('$REGISTRY:$PORT/$IMAGE', '$REGISTRY:$PORT',
                          '$IMAGE', '')
        self.assertParsed('$IMAGE:$TAG@$DIGEST', UNKNOWN_REGISTRY,
                          '$IMAGE', '$TAG@$DIGEST')

    def test_four_variables(self):
        self.assertParsed('$REGISTRY:$PORT/$IMAGE:$TAG', '$REGISTRY:$PORT',
                          '$IMAGE', '$TAG')

    def test_too_many_variables(self):
        link = '$A/$B/$C/$D/$E:1'
        self.assertParsed(link, UNKNOWN_REGISTRY, link, '')


class TestExtractVariables(BaseTestCase):
    def test_tokens(self):
        self.assertEqual(['$A', '${B}', '$C'],
                         extract_variables('$A/${B}:$C'))
        self.assertEqual([], extract_variables('alpine:3'))

    def test_dangling_dollar(self):
        self.assertEqual(['$'], extract_variables('image$'))
