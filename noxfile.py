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

import multiprocessing
import os

import nox


nox.options.error_on_external_run = True
nox.options.reuse_existing_virtualenvs = True
nox.options.sessions = ["tests-3", "linters"]


def set_env(session, var, default):
    session.env[var] = os.environ.get(var, default)


def set_standard_env_vars(session):
    set_env(session, 'OS_LOG_CAPTURE', '1')
    set_env(session, 'OS_STDERR_CAPTURE', '1')
    set_env(session, 'OS_STDOUT_CAPTURE', '1')
    set_env(session, 'OS_TEST_TIMEOUT', '60')
    session.env['PYTHONWARNINGS'] = 'always::DeprecationWarning:tests.base'


@nox.session(python='3')
def cover(session):
    set_standard_env_vars(session)
    session.env['PYTHON'] = 'coverage run --source pipecheck --parallel-mode'
    session.install('coverage', '-e', '.[test]')
    session.run('stestr', 'run')
    session.run('coverage', 'combine')
    session.run('coverage', 'html', '-d', 'cover')
    session.run('coverage', 'xml', '-o', 'cover/coverage.xml')


@nox.session(python='3')
def linters(session):
    set_standard_env_vars(session)
    session.install('flake8')
    session.run('flake8', 'pipecheck', 'tests', 'noxfile.py')


@nox.session(python='3')
def tests(session):
    set_standard_env_vars(session)
    session.install('-e', '.[test]')
    procs = max(int(multiprocessing.cpu_count() * 0.7), 1)
    session.run('stestr', 'run', '--slowest', f'--concurrency={procs}',
                *session.posargs)


@nox.session(python='3')
def venv(session):
    set_standard_env_vars(session)
    session.install('-e', '.[test]')
    session.run(*session.posargs)
