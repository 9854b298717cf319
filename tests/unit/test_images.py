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

from pipecheck.driver.gitlab.gitlabmodel import CIConfiguration
from pipecheck.images import ImageResolver
from pipecheck.lib.imageref import DEFAULT_TAG, UNKNOWN_REGISTRY
from tests.base import GitlabTestCase


class TestImageResolver(GitlabTestCase):
    def setUp(self):
        super(TestImageResolver, self).setUp()
        self.fake = self.connection.addProject('acme/app', group_id=3)

    def resolve(self, data):
        project = self.connection.getProject('acme/app')
        resolver = ImageResolver(self.connection, project)
        images = resolver.resolve(CIConfiguration(data))
        return {image.job: image for image in images}

    def test_scope_precedence(self):
        self.fake.variables = {'IMAGE': 'alpine'}
        self.fake.group_variables = [{'IMAGE': 'debian', 'TAG': 'group'},
                                     {'TAG': 'parent'}]
        self.connection.gl_client.instance_variables = {
            'HOST': 'registry.example.com'}
        images = self.resolve({
            'variables': {'IMAGE': 'busybox', 'TAG': 'pipeline'},
            'a': {'image': '$IMAGE', 'script': ['true']},
            'b': {'image': '$HOST/tool:$TAG', 'script': ['true']},
        })
        self.assertEqual('docker.io/alpine', images['a'].link)
        self.assertEqual(DEFAULT_TAG, images['a'].tag)
        self.assertEqual('$IMAGE', images['a'].original)
        # The nearest group wins over its parent.
        self.assertEqual('registry.example.com/tool:group', images['b'].link)

    def test_job_variables(self):
        images = self.resolve({
            'variables': {'TAG': '1.0'},
            'a': {'image': 'alpine:$TAG', 'variables': {'TAG': '2.0'}},
            'b': {'image': 'alpine:$TAG'},
        })
        self.assertEqual('2.0', images['a'].tag)
        self.assertEqual('1.0', images['b'].tag)

    def test_default_image(self):
        images = self.resolve({
            'default': {'image': {'name': 'python:3.12'}},
            'a': {'script': ['true']},
            'b': {'image': 'node:20'},
        })
        self.assertEqual('docker.io/python:3.12', images['a'].link)
        self.assertEqual('docker.io/node:20', images['b'].link)

    def test_top_level_image(self):
        images = self.resolve({
            'image': 'ruby:3',
            'a': {'script': ['true']},
        })
        self.assertEqual('docker.io/ruby:3', images['a'].link)

    def test_skipped_jobs(self):
        images = self.resolve({
            '.template': {'image': 'alpine:latest'},
            'no-image': {'script': ['true']},
            'unset': {'image': '$UNSET_IMAGE_VARIABLE'},
            'empty': {'image': '$SECURE_ANALYZERS_PREFIX'},
        })
        self.assertEqual(['unset'], list(images.keys()))
        self.assertEqual(UNKNOWN_REGISTRY, images['unset'].registry)

    def test_invalid_image_definition(self):
        images = self.resolve({
            'default': {'image': 'alpine:3.19'},
            'a': {'image': ['not', 'an', 'image']},
        })
        self.assertEqual('docker.io/alpine:3.19', images['a'].link)

    def test_predefined_variables(self):
        images = self.resolve({
            'sast': {'image': '$CI_TEMPLATE_REGISTRY_HOST/security-products/'
                              'semgrep:5'},
            'analyzer': {'image': '$SECURE_ANALYZERS_PREFIX/secrets:5'},
        })
        self.assertEqual('registry.gitlab.com/security-products/semgrep:5',
                         images['sast'].link)
        self.assertEqual('registry.gitlab.com', images['sast'].registry)

    def test_runtime_variables_stay_symbolic(self):
        images = self.resolve({
            'own': {'image': 'registry.example.com/$CI_PROJECT_PATH:'
                             '$CI_COMMIT_SHA'},
            'branch': {'image': 'registry.example.com/app:'
                                '$CI_COMMIT_REF_NAME'},
            'registry': {'image': '$CI_REGISTRY/app:$CI_COMMIT_SHA'},
        })
        self.assertEqual('registry.example.com/$CI_PROJECT_PATH:'
                         '$CI_COMMIT_SHA', images['own'].link)
        self.assertEqual('registry.example.com', images['own'].registry)
        self.assertEqual('$CI_PROJECT_PATH', images['own'].name)
        self.assertEqual('$CI_COMMIT_SHA', images['own'].tag)
        self.assertEqual('app', images['branch'].name)
        self.assertEqual('$CI_COMMIT_REF_NAME', images['branch'].tag)
        self.assertEqual(UNKNOWN_REGISTRY, images['registry'].registry)
        self.assertEqual('$CI_REGISTRY/app', images['registry'].name)
        self.assertEqual('$CI_COMMIT_SHA', images['registry'].tag)

    def test_unavailable_variables(self):
        self.connection.gl_client.instance_variables_error = 'Forbidden'
        self.connection.gl_client.instance_variables = {'IMAGE': 'debian'}
        images = self.resolve({'a': {'image': '$IMAGE:1'}})
        self.assertEqual('$IMAGE:1', images['a'].link)
