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

"""Attribute every job of a pipeline to the include that introduced it.

The merged configuration tells which jobs exist and which includes were
expanded, but not which include brought which job.  Each include
declared by the project is therefore expanded again on its own and the
jobs it introduces, plus the jobs extending them, are attributed to it.
Whatever is left is hardcoded in the project's own configuration.
"""

import logging

from pipecheck.driver.gitlab import gitlabmodel
from pipecheck.exceptions import IncludeFetchError
from pipecheck.lib import yamlutil
from pipecheck.lib.logutil import get_annotated_logger
from pipecheck.lib.versions import is_up_to_date, latest_refs, sort_versions
from pipecheck.model import (
    ComponentInfo,
    IncludeOrigin,
    Job,
    Origin,
    OriginMetrics,
    ORIGIN_COMPONENT,
    ORIGIN_HARDCODED,
    ORIGIN_LOCAL,
    ORIGIN_PROJECT,
    ORIGIN_REMOTE,
    ORIGIN_TEMPLATE,
)

COMPONENT_VERSION_SEPARATOR = '@'
SERVER_PLACEHOLDERS = ('$CI_SERVER_FQDN', '$CI_SERVER_HOST', '$CI_SERVER_URL')

# Include type to origin kind
INCLUDE_KINDS = {
    gitlabmodel.INCLUDE_COMPONENT: ORIGIN_COMPONENT,
    gitlabmodel.INCLUDE_LOCAL: ORIGIN_LOCAL,
    gitlabmodel.INCLUDE_FILE: ORIGIN_PROJECT,
    gitlabmodel.INCLUDE_REMOTE: ORIGIN_REMOTE,
    gitlabmodel.INCLUDE_TEMPLATE: ORIGIN_TEMPLATE,
}


def server_name(instance_url):
    name = instance_url or ''
    for scheme in ('https://', 'http://'):
        if name.startswith(scheme):
            name = name[len(scheme):]
    return name.rstrip('/')


def parse_component_path(path, instance_url):
    """Split a component reference into instance, path and version.

    ``gitlab.com/group/project/name@1.0`` gives
    ``('gitlab.com', 'group/project/name', '1.0')``.  The instance is
    empty when the reference starts with neither the server name nor a
    server placeholder variable.
    """
    server = server_name(instance_url)
    instance = ''
    clean_path = path
    for prefix in (server,) + SERVER_PLACEHOLDERS:
        if prefix and path.startswith(prefix + '/'):
            instance = prefix
            clean_path = path[len(prefix) + 1:]
            break

    version = ''
    parts = clean_path.split(COMPONENT_VERSION_SEPARATOR)
    if len(parts) > 1:
        clean_path = parts[0]
        version = parts[1]
    return instance, clean_path, version


def normalize_component_location(location, instance_url):
    """Return the versionless location of a component include.

    Server placeholders are replaced with the server name so that the
    location matches the one reported by the expansion service.
    """
    instance, clean_path, _ = parse_component_path(location, instance_url)
    if instance in SERVER_PLACEHOLDERS:
        instance = server_name(instance_url)
    return instance + '/' + clean_path


def parse_extends(value, log):
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        if all(isinstance(x, str) for x in value):
            return list(value)
        log.error("Found an element in extends that is not a string: %r",
                  value)
        return []
    log.error("Found an extends with unknown type %s", type(value).__name__)
    return []


def include_identities(entry, instance_url):
    """Return (IncludeOrigin, inputs) pairs for an original include entry.

    A string entry has no type and no inputs.  A ``file`` entry listing
    several files yields one pair per file.
    """
    if isinstance(entry, str):
        return [(IncludeOrigin(entry, '', ''), None)]
    if not isinstance(entry, dict):
        return []

    inputs = entry.get('inputs')
    if not isinstance(inputs, dict):
        inputs = None
    else:
        inputs = {str(k): v for k, v in inputs.items()}

    if isinstance(entry.get('component'), str):
        location = normalize_component_location(entry['component'],
                                                instance_url)
        return [(IncludeOrigin(location, gitlabmodel.INCLUDE_COMPONENT),
                 inputs)]
    if isinstance(entry.get('local'), str):
        return [(IncludeOrigin(entry['local'], gitlabmodel.INCLUDE_LOCAL),
                 inputs)]
    if entry.get('file'):
        project = entry.get('project')
        if not isinstance(project, str):
            project = ''
        return [(IncludeOrigin(f, gitlabmodel.INCLUDE_FILE, project), inputs)
                for f in gitlabmodel.as_list(entry['file'])
                if isinstance(f, str)]
    if isinstance(entry.get('remote'), str):
        return [(IncludeOrigin(entry['remote'], gitlabmodel.INCLUDE_REMOTE),
                 inputs)]
    if isinstance(entry.get('template'), str):
        return [(IncludeOrigin(entry['template'],
                               gitlabmodel.INCLUDE_TEMPLATE), inputs)]
    return []


def build_include_inputs(original, instance_url):
    """Map include fingerprints to the inputs declared for them."""
    include_inputs = {}
    if original is None:
        return include_inputs
    for entry in original.include:
        for include_origin, inputs in include_identities(entry,
                                                         instance_url):
            if inputs:
                include_inputs[include_origin.fingerprint] = inputs
    return include_inputs


class JobTable(object):
    """The jobs of the merged configuration, keyed by name."""

    def __init__(self):
        self.jobs = {}
        # Parent job name to the names of the jobs extending it
        self.extends_map = {}

    def __contains__(self, name):
        return name in self.jobs

    def __len__(self):
        return len(self.jobs)

    def get(self, name):
        return self.jobs.get(name)

    def extendedBy(self, name):
        return self.extends_map.get(name, [])

    def addJob(self, job):
        self.jobs[job.name] = job
        for parent in job.extends:
            self.extends_map.setdefault(parent, []).append(job.name)

    @classmethod
    def fromConfiguration(cls, merged, hardcoded, log):
        table = cls()
        for name, body in merged.jobs.items():
            extends = parse_extends(body.get('extends'), log)
            lines = yamlutil.safe_dump(body).count('\n')
            job = Job(name, extends, lines)
            job.hardcoded = name in hardcoded
            table.addJob(job)
        return table


class CatalogIndex(object):
    """Catalog components keyed by their versionless path."""

    def __init__(self, resources, instance_url):
        self.resources = {}
        versions = {}
        for resource in resources:
            for version in resource.versions:
                for component in version.components:
                    _, clean_path, _ = parse_component_path(
                        component.include_path, instance_url)
                    self.resources[clean_path] = resource
                    versions.setdefault(clean_path, []).append(version.name)
        self.versions = {path: sort_versions(names)
                         for path, names in versions.items()}

    def __len__(self):
        return len(self.resources)

    def lookup(self, clean_path):
        return self.resources.get(clean_path)

    def latestVersion(self, clean_path):
        versions = self.versions.get(clean_path)
        if versions:
            return versions[0]
        return ''


class Provenance(object):
    """The outcome of a provenance resolution."""

    def __init__(self, table, hardcoded, origins):
        self.table = table
        self.hardcoded = hardcoded
        self.origins = origins
        self.metrics = OriginMetrics.compute(table.jobs, hardcoded, origins)

    @property
    def jobs(self):
        return self.table.jobs


class ProvenanceResolver(object):
    log = logging.getLogger("pipecheck.ProvenanceResolver")

    def __init__(self, connection, project, log=None):
        self.connection = connection
        self.project = project
        self.instance_url = connection.baseurl
        self.log = get_annotated_logger(log or self.log, project=project)

    def resolve(self, configuration):
        """Attribute the jobs of a valid pipeline configuration.

        :param PipelineConfiguration configuration: The original and
            merged configurations with the expansion response.
        :returns: A :py:class:`Provenance`.
        """
        catalog = CatalogIndex(
            self.connection.getCatalogResources(self.project),
            self.instance_url)
        self.log.debug("Catalog holds %s components", len(catalog))

        include_inputs = build_include_inputs(configuration.original,
                                              self.instance_url)

        # Every job written in the project's own file starts hardcoded
        # until an include is found to provide it.
        hardcoded = {}
        if configuration.original is not None:
            for name in configuration.original.jobs:
                hardcoded[name] = True

        table = JobTable.fromConfiguration(configuration.merged, hardcoded,
                                           self.log)
        stages = configuration.merged.stages
        refs = latest_refs(self.project.default_branch)

        origins = []
        for include in configuration.response.includes:
            origin = self.resolveInclude(include, catalog, include_inputs,
                                         table, hardcoded, stages, refs)
            if origin is not None:
                origins.append(origin)

        origins.append(self.hardcodedOrigin(table, hardcoded))
        provenance = Provenance(table, hardcoded, origins)
        self.log.info("Resolved %s jobs across %s origins",
                      len(table), len(origins))
        return provenance

    def resolveInclude(self, include, catalog, include_inputs, table,
                       hardcoded, stages, refs):
        log = get_annotated_logger(self.log, include=include.location)

        # The expansion service lists nested includes too; only those
        # declared in the analyzed project's own context are first level.
        nested = include.context_project != self.project.path

        kind = INCLUDE_KINDS.get(include.type)
        if kind is None:
            log.error("Unknown include type %r", include.type)
        origin = Origin(kind or '', IncludeOrigin(
            include.location, include.type, include.project))
        origin.nested = nested

        if include.type == gitlabmodel.INCLUDE_COMPONENT:
            if not self._classifyComponent(origin, catalog, refs, log):
                return None
        elif include.type == gitlabmodel.INCLUDE_FILE:
            origin.version = include.ref

        if nested:
            log.debug("Nested include, not expanded on its own")
            return origin

        inputs = include_inputs.get(origin.fingerprint)
        log.debug("Expanding include with fingerprint %s and inputs %s",
                  origin.fingerprint, inputs)
        try:
            introduced = self.connection.getIncludeJobs(
                include, self.project, inputs, stages)
        except IncludeFetchError as e:
            log.error("Unable to fetch include, skipping it: %s", e)
            return None
        log.debug("Include introduces jobs %s", introduced)

        self._attribute(origin, introduced, table, hardcoded, log)
        return origin

    def _classifyComponent(self, origin, catalog, refs, log):
        """Fill component details; returns False if the origin is unusable."""
        instance, clean_path, version = parse_component_path(
            origin.include_origin.location, self.instance_url)
        if instance in SERVER_PLACEHOLDERS:
            instance = server_name(self.instance_url)
        location = instance + '/' + clean_path
        # The version is kept out of the identity of the include.
        origin.include_origin.location = location
        origin.version = version

        resource = catalog.lookup(clean_path)
        if resource is None:
            log.debug("No catalog component matches %s", clean_path)
            return True

        component_name = clean_path.split('/')[-1]
        if not component_name:
            log.warning("Component name of %s is empty", location)
            return False

        latest = catalog.latestVersion(clean_path)
        origin.from_catalog = True
        origin.component = ComponentInfo(
            repo_full_path=resource.full_path + '/' + component_name,
            repo_web_path=resource.web_path,
            repo_name=resource.name,
            component_name=component_name,
            include_path=location,
            latest_version=latest)
        origin.up_to_date = is_up_to_date(version, latest, refs)
        log.debug("Catalog component %s at version %s, latest %s",
                  resource.full_path, version, latest)
        return True

    def _attribute(self, origin, introduced, table, hardcoded, log):
        # Jobs extending a job of the include belong to it as well.
        for parent in introduced:
            for name in table.extendedBy(parent):
                if name not in table:
                    log.error("Job %s extending %s is not in the merged "
                              "configuration", name, parent)
                    continue
                self._claim(origin, table.get(name), hardcoded)

        for name in introduced:
            if name not in table:
                log.error("Job %s of the include is not in the merged "
                          "configuration", name)
                continue
            self._claim(origin, table.get(name), hardcoded)

    def _claim(self, origin, job, hardcoded):
        if any(x.name == job.name for x in origin.jobs):
            return
        if job.name in hardcoded:
            # Written in the project file but provided by an include:
            # an override.
            hardcoded[job.name] = False
            job.hardcoded = False
            job.overridden = True
        origin.jobs.append(job.copy())

    def hardcodedOrigin(self, table, hardcoded):
        origin = Origin(ORIGIN_HARDCODED)
        for name, flag in hardcoded.items():
            if not flag:
                continue
            if name not in table:
                self.log.warning("Hardcoded job %s is not in the merged "
                                 "configuration", name)
                continue
            origin.jobs.append(table.get(name).copy())
        return origin
