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

import json

import prettytable

from pipecheck.policy import (
    AuthorizedSourcesControl,
    BranchProtectionControl,
    ForbiddenTagsControl,
    ISSUE_UNPROTECTED,
)

SEPARATOR = '-' * 50


def _format_compliance(value):
    return '%.1f%%' % value


def _control_header(control):
    if control.skipped:
        state = '(skipped)'
    else:
        state = '(%s compliant)' % _format_compliance(control.compliance)
    return [SEPARATOR, '%s %s' % (control.title, state), SEPARATOR]


def _forbidden_tags_lines(control):
    lines = [
        '  Total Images: %s' % control.metrics.get('total', 0),
        '  Using Forbidden Tags: %s' %
        control.metrics.get('usingForbiddenTags', 0),
    ]
    if control.issues:
        lines.append('')
        lines.append('  Forbidden Tags Found:')
        for issue in control.issues:
            lines.append("    * Job '%s' uses forbidden tag '%s' "
                         "(image: %s)" % (issue['job'], issue['tag'],
                                          issue['link']))
    return lines


def _authorized_sources_lines(control):
    lines = [
        '  Total Images: %s' % control.metrics.get('total', 0),
        '  Authorized: %s' % control.metrics.get('authorized', 0),
        '  Unauthorized: %s' % control.metrics.get('unauthorized', 0),
    ]
    if control.issues:
        lines.append('')
        lines.append('  Unauthorized Images Found:')
        for issue in control.issues:
            lines.append("    * Job '%s' uses unauthorized image: %s" % (
                issue['job'], issue['link']))
    return lines


def _branch_protection_lines(control):
    metrics = control.metrics
    lines = []
    if metrics:
        lines.extend([
            '  Total Branches: %s' % metrics['branches'],
            '  Branches to Protect: %s' % metrics['branchesToProtect'],
            '  Protected Branches: %s' % metrics['totalProtectedBranches'],
            '  Unprotected: %s' % metrics['unprotectedBranches'],
            '  Non-Compliant: %s' % metrics['nonCompliantBranches'],
        ])
    if control.issues:
        lines.append('')
        lines.append('  Issues Found:')
    for issue in control.issues:
        if issue['type'] == ISSUE_UNPROTECTED:
            lines.append("    * Branch '%s' is not protected" %
                         issue['branchName'])
            continue
        lines.append("    * Branch '%s' has non-compliant protection "
                     "settings" % issue['branchName'])
        problems = issue['problems']
        if 'allowForcePush' in problems:
            lines.append('      - Force push is allowed (should be '
                         'disabled)')
        if 'codeOwnerApprovalRequired' in problems:
            lines.append('      - Code owner approval is not required')
        if 'minMergeAccessLevel' in problems:
            lines.append('      - Merge access level is too low (%s, '
                         'minimum: %s)' % (
                             issue['minMergeAccessLevel'],
                             issue['authorizedMinMergeAccessLevel']))
        if 'minPushAccessLevel' in problems:
            lines.append('      - Push access level is too low (%s, '
                         'minimum: %s)' % (
                             issue['minPushAccessLevel'],
                             issue['authorizedMinPushAccessLevel']))
    return lines


CONTROL_FORMATTERS = {
    ForbiddenTagsControl.name: _forbidden_tags_lines,
    AuthorizedSourcesControl.name: _authorized_sources_lines,
    BranchProtectionControl.name: _branch_protection_lines,
}


def issues_table(controls):
    table = prettytable.PrettyTable(field_names=['Control', 'Issues'])
    table.align['Control'] = 'l'
    table.align['Issues'] = 'r'
    for control in controls:
        issues = '-' if control.skipped else len(control.issues)
        table.add_row([control.title, issues])
    return table


def compliance_table(controls, compliance, threshold):
    table = prettytable.PrettyTable(
        field_names=['Control', 'Compliance', 'Status'])
    table.align['Control'] = 'l'
    table.align['Compliance'] = 'r'
    for control in controls:
        if control.skipped:
            table.add_row([control.title, '-', '-'])
            continue
        status = 'PASS' if control.compliance >= 100 else 'FAIL'
        table.add_row([control.title,
                       _format_compliance(control.compliance), status])
    table.add_row(['Total (required: %.0f%%)' % threshold,
                   _format_compliance(compliance),
                   'PASS' if compliance >= threshold else 'FAIL'])
    return table


def format_text(result):
    """Render an AnalysisResult as a human readable report."""
    lines = ['', 'Project: %s' % result.project.path, '']
    analysis = result.analysis
    if analysis.limited:
        state = 'missing' if analysis.ci_missing else 'invalid'
        lines.append('CI configuration is %s: limited analysis' % state)
        lines.append('')

    for control in result.controls:
        lines.extend(_control_header(control))
        if control.skipped:
            lines.append('  Status: SKIPPED (disabled in configuration)')
        elif control.error and not control.metrics:
            lines.append('  Error: %s' % control.error)
        else:
            formatter = CONTROL_FORMATTERS.get(control.name)
            if formatter:
                lines.extend(formatter(control))
        lines.append('')

    lines.append('Summary')
    lines.append('')
    lines.append('  Status: %s' % ('PASSED' if result.passed else 'FAILED'))
    lines.append('')
    lines.append(issues_table(result.controls).get_string())
    lines.append('')
    lines.append(compliance_table(result.controls, result.compliance,
                                  result.threshold).get_string())
    lines.append('')
    return '\n'.join(lines)


def write_json(result, path):
    with open(path, 'w') as f:
        json.dump(result.toDict(), f, indent=2)
        f.write('\n')
