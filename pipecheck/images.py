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

from pipecheck.driver.gitlab.gitlabmodel import image_name
from pipecheck.lib.imageref import parse_image_reference
from pipecheck.lib.logutil import get_annotated_logger
from pipecheck.lib.variables import (
    PREDEFINED_VARIABLES,
    VariableScopes,
    variables_from_yaml,
)
from pipecheck.model import ResolvedImage


class ImageResolver(object):
    """Resolve the container image of every job of a merged pipeline."""
    log = logging.getLogger("pipecheck.ImageResolver")

    def __init__(self, connection, project, log=None):
        self.connection = connection
        self.project = project
        self.log = get_annotated_logger(log or self.log, project=project)

    def variableScopes(self, merged):
        # Variables only known when a pipeline runs stay symbolic.
        scopes = VariableScopes(
            project=self.connection.getProjectVariables(self.project),
            group=self.connection.getGroupVariables(self.project),
            instance=self.connection.getInstanceVariables(),
            pipeline=merged.globalVariables(self.log),
            predefined=PREDEFINED_VARIABLES,
        )
        self.log.debug("Variable scopes: %s", scopes)
        return scopes

    def defaultImage(self, merged):
        try:
            return merged.defaultImage()
        except ValueError as e:
            self.log.error("Unable to read the default image: %s", e)
            return ''

    def resolve(self, merged):
        """Return one ResolvedImage per job running an image.

        :param CIConfiguration merged: The merged configuration.
        """
        scopes = self.variableScopes(merged)
        default_image = self.defaultImage(merged)

        images = []
        for name, body in merged.jobs.items():
            # Hidden jobs are templates and never run.
            if name.startswith('.'):
                continue
            log = get_annotated_logger(self.log, job=name)
            try:
                unresolved = image_name(body.get('image'))
            except ValueError as e:
                log.error("Unable to read the job image: %s", e)
                unresolved = ''
            if not unresolved:
                unresolved = default_image

            job_scopes = scopes.withJob(
                variables_from_yaml(body.get('variables'), log))
            link = job_scopes.resolve(unresolved)
            if not link:
                log.warning("Job with empty image found")
                continue

            ref = parse_image_reference(link, log=log)
            log.debug("Image %s resolved to %s", unresolved, ref)
            images.append(ResolvedImage(name, unresolved, ref.link,
                                        ref.registry, ref.name, ref.tag))
        return images
