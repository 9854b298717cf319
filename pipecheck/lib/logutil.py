# Copyright 2019 BMW Group
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

import logging

import re2

MASK = '***MASKED***'
TOKEN_PATTERN = r'gl[a-z]{2,4}-[A-Za-z0-9_-]{10,}'


def get_annotated_logger(logger, project=None, include=None, job=None):
    # Log adapters cannot be stacked; extend the existing one instead.
    if isinstance(logger, ContextLogAdapter):
        extra = dict(logger.extra)
        logger = logger.logger
    else:
        extra = {}

    if project is not None:
        if hasattr(project, 'path'):
            extra['project'] = project.path
        else:
            extra['project'] = project

    if include is not None:
        extra['include'] = include

    if job is not None:
        extra['job'] = job

    return ContextLogAdapter(logger, extra)


class ContextLogAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        msg, kwargs = super().process(msg, kwargs)
        extra = kwargs.get('extra', {})
        project = extra.get('project')
        include = extra.get('include')
        job = extra.get('job')
        new_msg = []
        if project is not None:
            new_msg.append('[project: %s]' % project)
        if include is not None:
            new_msg.append('[include: %s]' % include)
        if job is not None:
            new_msg.append('[job: %s]' % job)
        new_msg.append(msg)
        msg = ' '.join(new_msg)
        return msg, kwargs

    def addHandler(self, *args, **kw):
        return self.logger.addHandler(*args, **kw)


class MultiLineFormatter(logging.Formatter):
    def format(self, record):
        rec = super().format(record)
        ret = []
        # Save the existing message and re-use this record object to
        # format each line.
        saved_msg = record.message
        for i, line in enumerate(rec.split('\n')):
            if i:
                record.message = '  ' + line
                ret.append(self.formatMessage(record))
            else:
                ret.append(line)
        # Restore the message
        record.message = saved_msg
        return '\n'.join(ret)


class TokenMaskFilter(logging.Filter):
    """Mask GitLab access tokens in log records.

    Anything shaped like a personal, project, group or CI job token is
    replaced, as is any explicitly registered secret.
    """

    def __init__(self, secrets=None):
        super().__init__()
        self.pattern = re2.compile(TOKEN_PATTERN)
        self.secrets = [s for s in (secrets or []) if s]

    def mask(self, text):
        for secret in self.secrets:
            text = text.replace(secret, MASK)
        return self.pattern.sub(MASK, text)

    def filter(self, record):
        message = record.getMessage()
        masked = self.mask(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True
