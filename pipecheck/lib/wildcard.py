# Copyright (C) 2020 Red Hat, Inc
# Copyright 2025 Pipecheck Authors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or
# implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import re2


def wildcard_to_regex(pattern):
    """Translate a ``*``-only wildcard into an anchored re2 pattern.

    Every other character is literal, including ``?`` and ``[``.
    """
    return '^' + '.*'.join(re2.escape(p) for p in pattern.split('*')) + '$'


class WildcardPattern:
    def __init__(self, pattern):
        self.pattern = pattern
        o = re2.Options()
        o.log_errors = False
        o.dot_nl = True
        self.re = re2.compile(wildcard_to_regex(pattern), options=o)

    def __eq__(self, other):
        return (isinstance(other, WildcardPattern) and
                self.pattern == other.pattern)

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash(self.pattern)

    def __repr__(self):
        return '<WildcardPattern %s>' % (self.pattern,)

    def match(self, subject):
        return self.re.fullmatch(subject) is not None


def wildcard_match(pattern, subject):
    return WildcardPattern(pattern).match(subject)


def match_any(subject, patterns):
    """Return True if the subject matches at least one pattern."""
    for pattern in patterns:
        if not isinstance(pattern, WildcardPattern):
            pattern = WildcardPattern(pattern)
        if pattern.match(subject):
            return True
    return False
