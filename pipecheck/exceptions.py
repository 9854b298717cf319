# Copyright 2015 Rackspace Australia
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


class ConfigurationError(Exception):
    pass


class PolicyConfigurationError(ConfigurationError):
    def __init__(self, path, error):
        self.path = path
        self.error = error
        message = "Invalid policy file %s: %s" % (path, error)
        super(PolicyConfigurationError, self).__init__(message)


class ProjectNotFoundError(Exception):
    def __init__(self, project):
        self.project = project
        message = "Project %s not found" % (project,)
        super(ProjectNotFoundError, self).__init__(message)


class IncludeFetchError(Exception):
    def __init__(self, include, reason):
        self.include = include
        self.reason = reason
        message = "Unable to expand include %s: %s" % (include, reason)
        super(IncludeFetchError, self).__init__(message)
