# Copyright 2019 Red Hat, Inc.
# Copyright 2022 Acme Gating, LLC
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
from urllib.parse import quote_plus

import requests
import urllib3
import voluptuous as v

from pipecheck.driver.gitlab.gitlabmodel import (
    CatalogResource,
    CIConfiguration,
    INCLUDE_FILE,
    INCLUDE_TYPES,
    MergedConfiguration,
    PipelineConfiguration,
    ProtectionRule,
    STATUS_INVALID,
)
from pipecheck.exceptions import IncludeFetchError, ProjectNotFoundError
from pipecheck.lib import yamlutil
from pipecheck.lib.http import TimeoutHTTPAdapter
from pipecheck.lib.logutil import get_annotated_logger
from pipecheck.model import ProjectInfo

TIMEOUT = 30
RETRIES = 3
BACKOFF_FACTOR = 1.0
BACKOFF_MAX = 30
RETRY_STATUSES = (429, 500, 502, 503, 504)
PER_PAGE = 100

CI_CONFIG_QUERY = """
query getCiConfig($projectPath: ID!, $content: String!, $sha: String!,
                  $dryRun: Boolean!) {
  ciConfig(projectPath: $projectPath, content: $content, sha: $sha,
           dryRun: $dryRun) {
    mergedYaml
    errors
    warnings
    status
    includes {
      location
      type
      extra
      raw
      contextProject
      blob
    }
  }
}
"""

CATALOG_QUERY = """
query getCIComponentResources($scope: CiCatalogResourceScope) {
  ciCatalogResources(scope: $scope) {
    nodes {
      id
      name
      fullPath
      webPath
      versions {
        nodes {
          name
          components {
            nodes {
              id
              name
              includePath
            }
          }
        }
      }
    }
  }
}
"""

PROJECT_VARIABLES_QUERY = """
query getProjectVariables($fullPath: ID!, $after: String) {
  project(fullPath: $fullPath) {
    ciVariables(after: $after) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        key
        value
      }
    }
  }
}
"""

INSTANCE_VARIABLES_QUERY = """
query getInstanceVariables($after: String) {
  ciVariables(after: $after) {
    pageInfo {
      hasNextPage
      endCursor
    }
    nodes {
      key
      value
    }
  }
}
"""

GROUP_VARIABLES_QUERY = """
query getProjectGroupsVariables($fullPath: ID!) {
  project(fullPath: $fullPath) {
    group {
      ciVariables { nodes { key value } }
      parent {
        ciVariables { nodes { key value } }
        parent {
          ciVariables { nodes { key value } }
        }
      }
    }
  }
}
"""


class GitlabAPIClientException(Exception):
    def __init__(self, message, code=None):
        super(GitlabAPIClientException, self).__init__(message)
        self.code = code


class GitlabNotFoundException(GitlabAPIClientException):
    pass


class GitlabAPIClient():
    log = logging.getLogger("pipecheck.GitlabAPIClient")

    def __init__(self, baseurl, api_token, keepalive=0, timeout=TIMEOUT,
                 retries=RETRIES, backoff_factor=BACKOFF_FACTOR,
                 backoff_max=BACKOFF_MAX):
        self._orig_baseurl = baseurl
        self.baseurl = '%s/api/v4' % baseurl
        self.graphql_url = '%s/api/graphql' % baseurl
        self.api_token = api_token
        self.keepalive = keepalive
        self.timeout = timeout
        self.retries = retries
        self.backoff_factor = backoff_factor
        self.backoff_max = backoff_max
        self.headers = {}
        if self.api_token:
            self.headers['Authorization'] = 'Bearer %s' % self.api_token
        self.session = self._makeSession()

    def _makeSession(self):
        session = requests.Session()
        retry = urllib3.util.Retry(total=self.retries,
                                   backoff_factor=self.backoff_factor,
                                   backoff_max=self.backoff_max,
                                   status_forcelist=RETRY_STATUSES,
                                   allowed_methods=frozenset(['GET', 'POST']),
                                   raise_on_status=False)
        adapter = TimeoutHTTPAdapter(keepalive=self.keepalive,
                                     timeout=self.timeout,
                                     max_retries=retry)
        session.mount(self._orig_baseurl, adapter)
        return session

    def _manage_error(self, data, code, url, verb):
        if code < 400:
            return
        message = "Unable to %s on %s (code: %s) due to: %s" % (
            verb, url, code, data)
        if code == 404:
            raise GitlabNotFoundException(message, code)
        raise GitlabAPIClientException(message, code)

    def _decode(self, ret):
        try:
            return ret.json()
        except ValueError:
            return ret.text

    def get(self, url, params=None):
        self.log.debug("Getting resource %s ...", url)
        try:
            ret = self.session.get(url, params=params, headers=self.headers)
        except requests.exceptions.RequestException as e:
            raise GitlabAPIClientException(
                "Unable to GET on %s due to: %s" % (url, e))
        self.log.debug("GET returned (code: %s)", ret.status_code)
        return self._decode(ret), ret.status_code, ret.url, 'GET'

    def post(self, url, json=None):
        self.log.debug("Posting on resource %s ...", url)
        try:
            ret = self.session.post(url, json=json, headers=self.headers)
        except requests.exceptions.RequestException as e:
            raise GitlabAPIClientException(
                "Unable to POST on %s due to: %s" % (url, e))
        self.log.debug("POST returned (code: %s)", ret.status_code)
        return self._decode(ret), ret.status_code, ret.url, 'POST'

    def graphql(self, query, variables=None):
        resp = self.post(self.graphql_url,
                         json={'query': query, 'variables': variables or {}})
        self._manage_error(*resp)
        data = resp[0]
        if not isinstance(data, dict):
            raise GitlabAPIClientException(
                "Unexpected GraphQL response: %s" % (data,), resp[1])
        if data.get('errors'):
            messages = '; '.join(str(e.get('message', e))
                                 for e in data['errors'])
            raise GitlabAPIClientException(
                "GraphQL query failed: %s" % messages, resp[1])
        return data.get('data') or {}

    def _get_paginated(self, path, params=None):
        page = 1
        items = []

        # Handle pagination
        while True:
            page_params = dict(params or {})
            page_params.update({'per_page': PER_PAGE, 'page': page})
            resp = self.get(self.baseurl + path, params=page_params)
            self._manage_error(*resp)
            if resp[0]:
                items.extend(resp[0])
                if len(resp[0]) < PER_PAGE:
                    break
                page += 1
            else:
                break
        return items

    # https://docs.gitlab.com/ee/api/projects.html#get-single-project
    def get_project(self, project_path):
        path = "/projects/%s" % quote_plus(project_path)
        resp = self.get(self.baseurl + path)
        self._manage_error(*resp)
        return resp[0]

    # https://docs.gitlab.com/ee/api/repository_files.html#get-raw-file-from-repository
    def get_file_raw(self, project_path, file_path, ref):
        path = "/projects/%s/repository/files/%s/raw" % (
            quote_plus(project_path), quote_plus(file_path))
        resp = self.get(self.baseurl + path, params={'ref': ref})
        self._manage_error(*resp)
        data = resp[0]
        if not isinstance(data, str):
            # A JSON or YAML file that happened to decode as JSON
            return yamlutil.safe_dump(data)
        return data

    # https://docs.gitlab.com/ee/api/commits.html#list-repository-commits
    def get_commits(self, project_path, ref, per_page=1):
        path = "/projects/%s/repository/commits" % quote_plus(project_path)
        resp = self.get(self.baseurl + path,
                        params={'ref_name': ref, 'per_page': per_page})
        self._manage_error(*resp)
        return resp[0]

    # https://docs.gitlab.com/ee/api/branches.html#list-repository-branches
    def get_project_branches(self, project_path):
        path = "/projects/%s/repository/branches" % quote_plus(project_path)
        return [branch['name'] for branch in self._get_paginated(path)]

    # https://docs.gitlab.com/ee/api/protected_branches.html
    def get_protected_branches(self, project_path):
        path = "/projects/%s/protected_branches" % quote_plus(project_path)
        return self._get_paginated(path)

    # https://docs.gitlab.com/ee/api/graphql/reference/#queryciconfig
    def ci_config(self, project_path, content, sha):
        data = self.graphql(CI_CONFIG_QUERY, {
            'projectPath': project_path,
            'content': content,
            'sha': sha,
            'dryRun': False,
        })
        return data.get('ciConfig') or {}

    def ci_catalog_resources(self, scope):
        data = self.graphql(CATALOG_QUERY, {'scope': scope})
        return (data.get('ciCatalogResources') or {}).get('nodes') or []

    def _get_variable_pages(self, query, variables, extract):
        nodes = []
        cursor = None
        while True:
            page_vars = dict(variables)
            page_vars['after'] = cursor
            data = self.graphql(query, page_vars)
            ci_variables = extract(data) or {}
            nodes.extend(ci_variables.get('nodes') or [])
            page_info = ci_variables.get('pageInfo') or {}
            if not page_info.get('hasNextPage'):
                break
            cursor = page_info.get('endCursor')
        return nodes

    def project_ci_variables(self, project_path):
        return self._get_variable_pages(
            PROJECT_VARIABLES_QUERY, {'fullPath': project_path},
            lambda d: (d.get('project') or {}).get('ciVariables'))

    def instance_ci_variables(self):
        return self._get_variable_pages(
            INSTANCE_VARIABLES_QUERY, {},
            lambda d: d.get('ciVariables'))

    def group_ci_variables(self, project_path):
        """Return the variable nodes of each ancestor group, nearest first."""
        data = self.graphql(GROUP_VARIABLES_QUERY, {'fullPath': project_path})
        levels = []
        group = (data.get('project') or {}).get('group')
        while group:
            levels.append((group.get('ciVariables') or {}).get('nodes') or [])
            group = group.get('parent')
        return levels


def _variables_to_dict(nodes):
    return {node['key']: node.get('value') or '' for node in nodes
            if node.get('key')}


class GitlabConnection(object):
    driver_name = 'gitlab'
    log = logging.getLogger("pipecheck.GitlabConnection")

    def __init__(self, connection_name, connection_config):
        self.connection_name = connection_name
        self.connection_config = connection_config
        self.baseurl = self.connection_config.get(
            'baseurl', 'https://gitlab.com').rstrip('/')
        self.server = self.baseurl
        for scheme in ('https://', 'http://'):
            if self.server.startswith(scheme):
                self.server = self.server[len(scheme):]
        self.api_token = self.connection_config.get('api_token', '')
        self.keepalive = int(self.connection_config.get('keepalive', 0))
        self.timeout = float(self.connection_config.get('timeout', TIMEOUT))
        self.retries = int(self.connection_config.get('retries', RETRIES))
        self.backoff_factor = float(self.connection_config.get(
            'backoff_factor', BACKOFF_FACTOR))
        self.backoff_max = float(self.connection_config.get(
            'backoff_max', BACKOFF_MAX))

        self.gl_client = GitlabAPIClient(self.baseurl, self.api_token,
                                         keepalive=self.keepalive,
                                         timeout=self.timeout,
                                         retries=self.retries,
                                         backoff_factor=self.backoff_factor,
                                         backoff_max=self.backoff_max)

    def __repr__(self):
        return '<GitlabConnection %s %s>' % (self.connection_name,
                                             self.baseurl)

    def getProject(self, project_path, branch=None):
        log = get_annotated_logger(self.log, project=project_path)
        try:
            data = self.gl_client.get_project(project_path)
        except GitlabNotFoundException:
            raise ProjectNotFoundError(project_path)

        project = ProjectInfo(data.get('path_with_namespace') or project_path)
        project.id = data.get('id')
        project.name = data.get('name')
        project.default_branch = data.get('default_branch')
        project.analyze_branch = branch or project.default_branch
        project.archived = bool(data.get('archived'))
        project.visibility = data.get('visibility')
        if data.get('ci_config_path'):
            project.ci_config_path = data['ci_config_path']
        namespace = data.get('namespace') or {}
        if namespace.get('kind') == 'group':
            project.group_id = namespace.get('id')

        try:
            commits = self.gl_client.get_commits(
                project.path, project.ref or 'main')
            if commits:
                project.latest_sha = commits[0]['id']
        except GitlabAPIClientException as e:
            log.warning("Unable to fetch latest commit SHA, using HEAD: %s",
                        e)
        log.info("Project %s fetched: default branch %s, CI file %s",
                 project.id, project.default_branch, project.ci_config_path)
        return project

    def getPipelineConfiguration(self, project):
        """Fetch the original configuration and expand it.

        Returns None when the project cannot carry a pipeline (archived).
        Raises GitlabAPIClientException when the configuration cannot be
        retrieved, GitlabNotFoundException when the file does not exist.
        """
        log = get_annotated_logger(self.log, project=project)
        if project.archived:
            log.info("Archived project, cannot retrieve merged configuration")
            return None

        text = self.gl_client.get_file_raw(
            project.path, project.ci_config_path, project.ref)
        response = MergedConfiguration.fromDict(
            self.gl_client.ci_config(project.path, text, project.latest_sha))

        try:
            original = CIConfiguration.fromYaml(text)
        except (yamlutil.YAMLError, ValueError):
            if response.status == STATUS_INVALID:
                log.info("Unable to parse the configuration, which is "
                         "reported invalid")
                return PipelineConfiguration(text, None, None, response)
            raise

        merged = CIConfiguration.fromYaml(response.merged_yaml)
        return PipelineConfiguration(text, original, merged, response)

    def _includeConfiguration(self, include, inputs, stages):
        if include.type not in INCLUDE_TYPES:
            raise IncludeFetchError(
                include.location, "unknown include type %r" % include.type)
        entry = {include.type: include.location}
        if include.type == INCLUDE_FILE:
            entry['project'] = include.project
            if include.ref:
                entry['ref'] = include.ref
        if inputs:
            entry['inputs'] = inputs
        conf = {}
        if stages:
            conf['stages'] = list(stages)
        conf['include'] = [entry]
        return yamlutil.safe_dump(conf, sort_keys=False)

    def getIncludeJobs(self, include, project, inputs=None, stages=None):
        """Return the names of the jobs an include introduces on its own.

        The include is expanded alone, inside the analyzed project and
        with the parent pipeline's stages so that stage references
        resolve.
        """
        log = get_annotated_logger(self.log, project=project,
                                   include=include.location)
        content = self._includeConfiguration(include, inputs, stages)
        log.debug("Expanding include configuration:\n%s", content)
        try:
            data = self.gl_client.ci_config(project.path, content,
                                            project.latest_sha)
        except GitlabAPIClientException as e:
            raise IncludeFetchError(include.location, str(e))
        response = MergedConfiguration.fromDict(data)
        if response.errors:
            log.debug("Include expansion reported errors: %s",
                      response.errors)
        try:
            merged = CIConfiguration.fromYaml(response.merged_yaml)
        except (yamlutil.YAMLError, ValueError) as e:
            raise IncludeFetchError(include.location, str(e))
        return list(merged.jobs.keys())

    def getCatalogResources(self, project):
        scope = 'NAMESPACES' if project.in_group else 'ALL'
        log = get_annotated_logger(self.log, project=project)
        try:
            nodes = self.gl_client.ci_catalog_resources(scope)
        except GitlabAPIClientException as e:
            log.warning("Unable to retrieve CI/CD catalog resources: %s", e)
            return []
        return [CatalogResource.fromDict(x) for x in nodes]

    def getInstanceVariables(self):
        try:
            return _variables_to_dict(self.gl_client.instance_ci_variables())
        except GitlabAPIClientException as e:
            self.log.warning("Instance variables unavailable: %s", e)
            return {}

    def getGroupVariables(self, project):
        log = get_annotated_logger(self.log, project=project)
        try:
            levels = self.gl_client.group_ci_variables(project.path)
        except GitlabAPIClientException as e:
            log.warning("Group variables unavailable: %s", e)
            return {}
        variables = {}
        # The nearest group wins.
        for nodes in levels:
            for key, value in _variables_to_dict(nodes).items():
                variables.setdefault(key, value)
        return variables

    def getProjectVariables(self, project):
        log = get_annotated_logger(self.log, project=project)
        try:
            return _variables_to_dict(
                self.gl_client.project_ci_variables(project.path))
        except GitlabAPIClientException as e:
            log.warning("Project variables unavailable: %s", e)
            return {}

    def getBranchProtection(self, project):
        """Return the branch names and the protection rules of a project.

        Rules that cannot be read are treated as absent.
        """
        log = get_annotated_logger(self.log, project=project)
        branches = self.gl_client.get_project_branches(project.path)
        try:
            rules = [ProtectionRule.fromDict(x) for x in
                     self.gl_client.get_protected_branches(project.path)]
        except GitlabAPIClientException as e:
            log.warning("Unable to fetch branch protections: %s", e)
            rules = []
        log.debug("Fetched %s branches and %s protection rules",
                  len(branches), len(rules))
        return branches, rules


def getSchema():
    return v.Schema({
        v.Required('baseurl'): str,
        'api_token': str,
        'keepalive': v.Coerce(int),
        'timeout': v.Coerce(float),
        'retries': v.Coerce(int),
        'backoff_factor': v.Coerce(float),
        'backoff_max': v.Coerce(float),
    })
