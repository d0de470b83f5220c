# -*- coding: utf-8 -*-

# Schema Gate
# Copyright (C) 2025 Jwadow
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Path router.

Dispatches a request path to an endpoint pipeline by exact literal prefix:
the remainder after the prefix is the endpoint name. The prefix is plain
text, never a pattern, so characters such as "." or "+" match themselves.
Unmatched paths yield None and are left to the caller (usually a 404).
"""

from typing import Any, AsyncIterator, Dict, Mapping, Optional

from loguru import logger

from schemagate.pipeline import EndpointPipeline, PipelineOutcome
from schemagate.schema import Schema
from schemagate.state import RequestState


class SchemaRouter:
    """
    Maps ``prefix + name`` paths to endpoint pipelines.

    Args:
        api: Schema whose prefix is matched
        handlers: Pipeline per endpoint name; names absent from the
            schema are rejected
    """

    def __init__(self, api: Schema, handlers: Mapping[str, EndpointPipeline]):
        unknown = sorted(set(handlers) - set(api.endpoints))
        if unknown:
            raise ValueError(f"Handlers for endpoints missing from the schema: {unknown}")
        missing = sorted(set(api.endpoints) - set(handlers))
        if missing:
            logger.warning("[Router] Endpoints without handlers will not be served: {}", missing)

        self.schema = api
        self.prefix = api.prefix
        self.handlers: Dict[str, EndpointPipeline] = dict(handlers)

    def resolve(self, path: str) -> Optional[EndpointPipeline]:
        """Return the pipeline for a path, or None when nothing matches."""
        if not path.startswith(self.prefix):
            return None
        name = path[len(self.prefix):]
        if not name:
            return None
        return self.handlers.get(name)

    async def dispatch(
        self,
        state: RequestState,
        body: Optional[AsyncIterator[bytes]] = None,
    ) -> Optional[PipelineOutcome]:
        """
        Run the matching pipeline for ``state.path``.

        Returns:
            PipelineOutcome, or None when the path matches no endpoint
        """
        pipeline = self.resolve(state.path)
        if pipeline is None:
            logger.debug("[Router] No endpoint for {}", state.path)
            return None
        return await pipeline.handle(state, body=body)


def create_schema_handler(api: Schema, handlers: Mapping[str, Any]) -> SchemaRouter:
    """
    Build a router from a schema and its per-endpoint handlers.

    ``handlers`` values may be ready EndpointPipeline objects or plain
    business logic callables (no session stage, default error handler).
    """
    pipelines: Dict[str, EndpointPipeline] = {}
    for name, handler in handlers.items():
        if isinstance(handler, EndpointPipeline):
            pipelines[name] = handler
        elif name in api.endpoints:
            pipelines[name] = EndpointPipeline(api.endpoints[name], body_handler=handler, name=name)
        else:
            pipelines[name] = handler
    return SchemaRouter(api, pipelines)
