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

from pipecheck.driver.gitlab.gitlabconnection import (
    GitlabAPIClientException,
    GitlabNotFoundException,
)
from pipecheck.images import ImageResolver
from pipecheck.lib import yamlutil
from pipecheck.lib.logutil import get_annotated_logger
from pipecheck.model import PipelineAnalysis
from pipecheck.provenance import ProvenanceResolver


class PipelineResolver(object):
    """Build the analysis dataset of a project's pipeline.

    The configuration is fetched and checked first.  A configuration
    which cannot be retrieved, is invalid or is missing ends the
    resolution there with a limited analysis; otherwise every job is
    attributed to its origin and its image is resolved.
    """
    log = logging.getLogger("pipecheck.PipelineResolver")

    def __init__(self, connection, project, log=None):
        self.connection = connection
        self.project = project
        self.log = get_annotated_logger(log or self.log, project=project)

    def fetchConfiguration(self, analysis):
        try:
            configuration = self.connection.getPipelineConfiguration(
                self.project)
        except GitlabNotFoundException as e:
            # The project exists, so only its CI file is absent.
            self.log.warning("CI configuration not found, continuing with "
                             "limited data: %s", e)
            analysis.markMissing(str(e))
            return None
        except (GitlabAPIClientException, yamlutil.YAMLError,
                ValueError) as e:
            self.log.warning("Unable to retrieve the merged CI "
                             "configuration, continuing with limited "
                             "data: %s", e)
            analysis.markInvalid(str(e))
            return None

        if configuration is None:
            self.log.warning("No CI configuration available, continuing "
                             "with limited data")
            analysis.markMissing("no configuration")
            return None

        response = configuration.response
        if not response.valid:
            self.log.warning("Pipeline has configuration errors, continuing "
                             "with limited data: %s", response.errors)
            error = '; '.join(response.errors) or response.status
            if configuration.original_text:
                analysis.markInvalid(error)
            else:
                analysis.markMissing(error)
            return None

        return configuration

    def resolve(self):
        """Return the PipelineAnalysis of the project."""
        analysis = PipelineAnalysis(self.project)
        configuration = self.fetchConfiguration(analysis)
        if analysis.limited:
            return analysis

        provenance = ProvenanceResolver(
            self.connection, self.project, log=self.log).resolve(
                configuration)
        analysis.jobs = provenance.jobs
        analysis.origins = provenance.origins
        analysis.origin_metrics = provenance.metrics

        analysis.images = ImageResolver(
            self.connection, self.project, log=self.log).resolve(
                configuration.merged)
        self.log.info("Pipeline resolved: %s jobs, %s origins, %s images",
                      len(analysis.jobs), len(analysis.origins),
                      len(analysis.images))
        return analysis
