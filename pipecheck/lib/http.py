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

import socket

from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection


class TimeoutHTTPAdapter(HTTPAdapter):
    """A requests HTTPAdapter with a default timeout and TCP keepalives.

    Requests issued without an explicit timeout use the adapter's one,
    so that every call against the API is bounded.
    """

    def __init__(self, *args, **kw):
        self.keepalive = int(kw.pop('keepalive', 0))
        self.timeout = kw.pop('timeout', None)
        super().__init__(*args, **kw)

    def init_poolmanager(self, *args, **kw):
        if self.keepalive:
            idle = self.keepalive
            kw['socket_options'] = HTTPConnection.default_socket_options + [
                (socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1),
                (socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, idle),
                (socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, idle),
                (socket.IPPROTO_TCP, socket.TCP_KEEPCNT, 2),
            ]
        return super().init_poolmanager(*args, **kw)

    def send(self, request, **kw):
        if kw.get('timeout') is None:
            kw['timeout'] = self.timeout
        return super().send(request, **kw)
