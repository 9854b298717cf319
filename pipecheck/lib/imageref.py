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

"""Split container image references into registry, name and tag.

References without variables are split the way the container runtime
would.  References still carrying unresolved variables are only split
for shapes that cannot be misread; anything else keeps the whole text
as the name with an unknown registry, so an untrusted image is never
mistaken for a trusted one.
"""

import logging

DEFAULT_TAG = 'latest'
DOCKER_HUB = 'docker.io'
UNKNOWN_REGISTRY = 'unknown'

log = logging.getLogger("pipecheck.imageref")


class ImageReference(object):
    def __init__(self, link, registry, name, tag):
        self.link = link
        self.registry = registry
        self.name = name
        self.tag = tag

    def __repr__(self):
        return '<ImageReference %s registry=%s name=%s tag=%s>' % (
            self.link, self.registry, self.name, self.tag)

    def __eq__(self, other):
        if not isinstance(other, ImageReference):
            return False
        return (self.link == other.link and
                self.registry == other.registry and
                self.name == other.name and
                self.tag == other.tag)

    def __ne__(self, other):
        return not self.__eq__(other)


def _is_name_char(c):
    return c.isascii() and (c.isalnum() or c == '_')


def extract_variables(link):
    """Return the variable tokens of a reference, in order of occurrence.

    ``${NAME}`` is one token.  A ``$`` not followed by a name is still
    counted so that the reference is treated conservatively.
    """
    variables = []
    idx = 0
    while idx < len(link):
        if link[idx] != '$':
            idx += 1
            continue
        end = idx + 1
        if end < len(link) and link[end] == '{':
            close = link.find('}', end)
            if close > end + 1 and all(
                    _is_name_char(c) for c in link[end + 1:close]):
                variables.append(link[idx:close + 1])
                idx = close + 1
                continue
        while end < len(link) and _is_name_char(link[end]):
            end += 1
        variables.append(link[idx:end])
        idx = end
    return variables


def _looks_like_registry(part):
    return '.' in part or ':' in part


def _split_tag(link):
    """Split a literal trailing ``:tag`` off a link, if present.

    Returns (name, tag) or None when the text after the last colon is a
    path or contains variables.
    """
    last_colon = link.rfind(':')
    if last_colon <= 0:
        return None
    after = link[last_colon + 1:]
    if '/' in after or '$' in after:
        return None
    return link[:last_colon], after


def _split_variable_tag(link):
    """Split a trailing ``:$TAG`` made of a single variable."""
    last_colon = link.rfind(':')
    if last_colon <= 0:
        return None
    after = link[last_colon + 1:]
    if '/' in after:
        return None
    if after.startswith('$') and after.count('$') == 1:
        return link[:last_colon], after
    return None


def _parse_double_colon(link):
    parts = link.split('::')
    if (len(parts) == 2 and parts[0].count('$') == 1 and
            parts[1].count('$') == 1):
        return UNKNOWN_REGISTRY, parts[0], parts[1]
    return None


def _parse_double_slash(link):
    tag = ''
    name = link
    last_colon = link.rfind(':')
    if last_colon > 0:
        after = link[last_colon + 1:]
        if ('/' not in after and '$' not in after) or after.count('$') == 1:
            tag = after
            name = link[:last_colon]
    return UNKNOWN_REGISTRY, name.replace('//', '/'), tag


def _parse_leading_slash(link):
    stripped = link[1:]
    last_colon = stripped.rfind(':')
    if last_colon > 0:
        after = stripped[last_colon + 1:]
        if ('/' not in after and '$' not in after) or after.count('$') == 1:
            return UNKNOWN_REGISTRY, stripped[:last_colon], after
    return UNKNOWN_REGISTRY, stripped, ''


def _parse_literal_registry_path(link):
    first_slash = link.find('/')
    if first_slash <= 0:
        return None
    registry = link[:first_slash]
    if not _looks_like_registry(registry) or registry.startswith('$'):
        return None
    remaining = link[first_slash + 1:]
    tag = ''
    path = remaining
    if ':' in remaining:
        last_colon = remaining.rfind(':')
        after = remaining[last_colon + 1:]
        if last_colon > 0 and '/' not in after:
            if '$' not in after or after.count('$') == 1:
                tag = after
                path = remaining[:last_colon]
    elif '@' in remaining:
        last_at = remaining.rfind('@')
        after = remaining[last_at + 1:]
        if last_at > 0 and ('$' not in after or after.count('$') == 1):
            tag = after
            path = remaining[:last_at]
    return registry, path, tag


def _parse_one_variable(link, variable):
    pos = link.find(variable)
    if pos > 0:
        before = link[:pos]
        after = link[pos + len(variable):]

        # registry/image:$TAG or registry/image@$DIGEST
        if before.endswith(':') or before.endswith('@'):
            head = before[:-1]
            if '/' in head:
                last_slash = head.rfind('/')
                registry = head[:last_slash]
                if _looks_like_registry(registry):
                    return registry, head[last_slash + 1:], variable + after
            else:
                return DOCKER_HUB, head, variable + after

        # registry/$IMAGE:tag or registry/$IMAGE
        if before.endswith('/'):
            registry = before[:-1]
            if _looks_like_registry(registry):
                if after.startswith(':'):
                    return registry, variable, after[1:]
                return registry, variable + after, ''

    if pos == 0:
        if len(link) == len(variable):
            return UNKNOWN_REGISTRY, variable, ''
        split = _split_tag(link)
        if split:
            return UNKNOWN_REGISTRY, split[0], split[1]

    return None


def _parse_two_variables(link, first, second):
    first_start = link.find(first)
    first_end = first_start + len(first)
    second_start = link.find(second, first_end)
    before = link[:first_start]
    between = link[first_end:second_start]
    after = link[second_start + len(second):]

    if before.endswith('/'):
        registry = before[:-1]
        if _looks_like_registry(registry):
            if between == ':' and after == '':
                # registry.com/$IMAGE:$TAG
                return registry, first, second
            if between == '/' and after.startswith(':'):
                # registry.com/$NAMESPACE/$IMAGE:tag
                return registry, first + '/' + second, after[1:]
            if between == '/' and after == '':
                # registry.com/$NAMESPACE/$IMAGE
                return registry, first + '/' + second, ''
            if between.endswith(':') and after == '':
                # registry.com/$IMAGE/name:$TAG
                return registry, first + between[:-1], second

    if before == '':
        if between == ':':
            if after == '':
                # $IMAGE:$TAG, read as image and tag rather than host and port
                return UNKNOWN_REGISTRY, first, second
            if after.startswith('/'):
                # $REGISTRY:$PORT/...
                registry = first + ':' + second
                remaining = after[1:]
                if ':' in remaining:
                    parts = remaining.split(':')
                    return registry, parts[0], parts[1]
                return registry, remaining, ''
        elif between == '@':
            return UNKNOWN_REGISTRY, first, second
        elif between == '':
            return UNKNOWN_REGISTRY, first + second, ''

    last_colon = link.rfind(':')
    if last_colon > 0 and '/' not in link[last_colon + 1:]:
        tag = link[last_colon + 1:]
        if tag.count('$') <= 1:
            return UNKNOWN_REGISTRY, link[:last_colon], tag

    return None


def _parse_three_variables(link):
    colon = link.find(':')
    at = link.find('@')
    if colon >= 0 and at >= 0 and colon < at:
        # $IMAGE:$TAG@$DIGEST
        name = link[:colon]
        tag = link[colon + 1:at]
        digest = link[at + 1:]
        if (name.count('$') == 1 and tag.count('$') == 1 and
                digest.count('$') == 1):
            return UNKNOWN_REGISTRY, name, tag + '@' + digest

    split = _split_variable_tag(link)
    if split:
        return UNKNOWN_REGISTRY, split[0], split[1]

    last_at = link.rfind('@')
    if last_at > 0:
        digest = link[last_at + 1:]
        if digest.startswith('$') and digest.count('$') == 1:
            return UNKNOWN_REGISTRY, link[:last_at], digest

    slash = link.find('/')
    if colon >= 0 and slash >= 0 and colon < slash:
        # $REGISTRY:$PORT/$IMAGE
        registry = link[:slash]
        image = link[slash + 1:]
        if registry.count('$') == 2 and image.count('$') == 1:
            return registry, image, ''

    return None


def _parse_four_variables(link):
    colon = link.find(':')
    slash = link.find('/')
    if colon >= 0 and slash >= 0 and colon < slash:
        registry = link[:slash]
        remaining = link[slash + 1:]
        if registry.count('$') == 2:
            if ':' in remaining:
                last_colon = remaining.rfind(':')
                image = remaining[:last_colon]
                tag = remaining[last_colon + 1:]
                if (last_colon > 0 and '/' not in tag and
                        image.count('$') == 1 and tag.count('$') == 1):
                    # $REGISTRY:$PORT/$IMAGE:$TAG
                    return registry, image, tag
            elif remaining.count('$') == 2:
                # $REGISTRY:$PORT/$USER/$IMAGE
                return registry, remaining, ''

    split = _split_variable_tag(link)
    if split:
        return UNKNOWN_REGISTRY, split[0], split[1]
    return None


def _parse_with_variables(link):
    # Structural artifacts take precedence over the variable count.
    if '::' in link:
        parsed = _parse_double_colon(link)
        if parsed:
            return parsed
    if '//' in link:
        return _parse_double_slash(link)
    if link.startswith('/'):
        return _parse_leading_slash(link)

    parsed = _parse_literal_registry_path(link)
    if parsed:
        return parsed

    variables = extract_variables(link)
    count = len(variables)
    parsed = None
    if count == 1:
        parsed = _parse_one_variable(link, variables[0])
    elif count == 2:
        parsed = _parse_two_variables(link, variables[0], variables[1])
    elif count == 3:
        parsed = _parse_three_variables(link)
    elif count == 4:
        parsed = _parse_four_variables(link)
    # Five or more variables are never split.
    if parsed:
        return parsed
    return UNKNOWN_REGISTRY, link, ''


def _parse_literal(link):
    first_slash = link.find('/')
    if first_slash == -1:
        parts = link.split(':')
        tag = parts[1] if len(parts) > 1 else DEFAULT_TAG
        return DOCKER_HUB + '/' + link, DOCKER_HUB, parts[0], tag

    registry = link[:first_slash]
    if _looks_like_registry(registry):
        parts = link[first_slash + 1:].split(':')
        tag = parts[1] if len(parts) > 1 else DEFAULT_TAG
        return link, registry, parts[0], tag

    parts = link.split(':')
    tag = parts[1] if len(parts) > 1 else DEFAULT_TAG
    return DOCKER_HUB + '/' + link, DOCKER_HUB, parts[0], tag


def parse_image_reference(link, log=log):
    """Parse an image reference.

    :param str link: The image reference after variable substitution.
    :returns: An :py:class:`ImageReference`.  The link is prefixed with
        the Docker Hub domain when the registry was implied.

    This never raises; unparseable references fall back to an unknown
    registry with the whole reference as the name.
    """
    if '$' in link:
        registry, name, tag = _parse_with_variables(link)
        canonical = link
        log.debug("Image %s contains variables: registry=%s name=%s tag=%s",
                  link, registry, name, tag)
    else:
        canonical, registry, name, tag = _parse_literal(link)

    if not name.strip() and link.strip():
        log.warning("Image name of %s is empty, keeping the full reference",
                    link)
        canonical = link
        registry = UNKNOWN_REGISTRY
        name = link
        tag = ''

    return ImageReference(canonical, registry, name, tag)
