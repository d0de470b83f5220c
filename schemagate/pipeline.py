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
Pipeline executor.

Runs the stages of one endpoint in a fixed order for each request.

Execution order matters:
  1. Headers        - method, upgrade, auth, accept, content (compiled)
  2. Session        - user-supplied, adds ``session`` to the state
  3. Body           - parses and validates input / files (compiled)
  4. Business logic - user-supplied, returns HandlerResponse or WebSocketAccept
  5. Shaping        - formats the outcome per the declared contract

Stages 1-3 return Ok/Err. The first Err stops the pipeline and is handed,
unchanged, to the endpoint's error handler (problem_response by default).

Per-request state machine:
    IDLE -> HEADERS_CHECKED -> SESSION_ESTABLISHED -> BODY_PARSED
         -> BUSINESS_LOGIC_DONE -> SHAPED
    with FAILED reachable from every non-terminal phase.
"""

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, Optional, Union

from loguru import logger

from schemagate.compiler import CompiledEndpoint, compile_endpoint
from schemagate.errors import ContractViolation
from schemagate.result import Err, Ok, Result
from schemagate.schema import Endpoint, Schema
from schemagate.shaper import problem_response, shape_response
from schemagate.state import RequestState, WebSocketUpgrade, WireResponse

SessionHandler = Callable[[RequestState], Any]
BodyHandler = Callable[[RequestState], Any]
ErrorHandler = Callable[[Any, RequestState], WireResponse]


class PipelinePhase(str, Enum):
    IDLE = "Idle"
    HEADERS_CHECKED = "HeadersChecked"
    SESSION_ESTABLISHED = "SessionEstablished"
    BODY_PARSED = "BodyParsed"
    BUSINESS_LOGIC_DONE = "BusinessLogicDone"
    SHAPED = "Shaped"
    FAILED = "Failed"


@dataclass(frozen=True)
class PipelineOutcome:
    """
    Result of running the pipeline for one request.

    Attributes:
        phase: SHAPED or FAILED
        response: WireResponse or WebSocketUpgrade to hand to the transport
        state: Last state reached
        error: The tagged (or user) error when FAILED
        failed_in: Phase the pipeline had completed when it failed
    """

    phase: PipelinePhase
    response: Union[WireResponse, WebSocketUpgrade]
    state: RequestState
    error: Any = None
    failed_in: Optional[PipelinePhase] = None

    @property
    def failed(self) -> bool:
        return self.phase == PipelinePhase.FAILED


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _pass_session(state: RequestState) -> Result:
    return Ok(state)


def _require_state(result: Any, stage: str) -> Result:
    if not isinstance(result, (Ok, Err)):
        raise ContractViolation(
            f"{stage} handler must return Ok or Err, got {type(result).__name__}",
        )
    if result.ok and not isinstance(result.value, RequestState):
        raise ContractViolation(
            f"{stage} handler must return Ok(RequestState), got Ok({type(result.value).__name__})",
        )
    return result


class EndpointPipeline:
    """
    Executable pipeline for one endpoint.

    Stage selection happens once, in the constructor; ``handle()`` only
    calls the selected functions.

    Args:
        definition: Endpoint descriptor
        session_handler: ``state -> Ok(state with session) | Err(error)``,
            sync or async. Defaults to passing the state through.
        body_handler: ``state -> HandlerResponse | WebSocketAccept``,
            sync or async; may also return Err(error) to fail the request
        error_handler: ``(error, state) -> WireResponse``; defaults to
            problem_response
        name: Endpoint name, used in log messages
    """

    def __init__(
        self,
        definition: Endpoint,
        body_handler: BodyHandler,
        session_handler: Optional[SessionHandler] = None,
        error_handler: Optional[ErrorHandler] = None,
        name: Optional[str] = None,
    ):
        self.definition = definition
        self.compiled: CompiledEndpoint = compile_endpoint(definition)
        self.session_handler = session_handler or _pass_session
        self.body_handler = body_handler
        self.error_handler = error_handler or problem_response
        self.name = name or "<endpoint>"

    @property
    def error_tags(self):
        return self.compiled.error_tags

    def _fail(self, error: Any, state: RequestState, phase: PipelinePhase) -> PipelineOutcome:
        tag = getattr(error, "tag", type(error).__name__)
        logger.debug("[Pipeline] {} failed after {}: {}", self.name, phase.value, tag)
        return PipelineOutcome(
            phase=PipelinePhase.FAILED,
            response=self.error_handler(error, state),
            state=state,
            error=error,
            failed_in=phase,
        )

    async def handle(
        self,
        state: RequestState,
        body: Optional[AsyncIterator[bytes]] = None,
    ) -> PipelineOutcome:
        """
        Run all stages for one request.

        Args:
            state: Initial state built from protocol facts
            body: Async iterator over the request body chunks

        Returns:
            PipelineOutcome (SHAPED or FAILED)

        Raises:
            ContractViolation: Business logic broke the declared contract
        """
        phase = PipelinePhase.IDLE

        # 1. Headers
        checked = self.compiled.check_headers(state)
        if not checked.ok:
            return self._fail(checked.error, state, phase)
        state = checked.value
        phase = PipelinePhase.HEADERS_CHECKED

        # 2. Session
        session = _require_state(await _resolve(self.session_handler(state)), "Session")
        if not session.ok:
            return self._fail(session.error, state, phase)
        state = session.value
        phase = PipelinePhase.SESSION_ESTABLISHED

        # 3. Body
        parsed = await self.compiled.parse_body(state, body)
        if not parsed.ok:
            return self._fail(parsed.error, state, phase)
        state = parsed.value
        phase = PipelinePhase.BODY_PARSED

        # 4. Business logic
        outcome = await _resolve(self.body_handler(state))
        if isinstance(outcome, Err):
            return self._fail(outcome.error, state, phase)
        if isinstance(outcome, Ok):
            outcome = outcome.value
        phase = PipelinePhase.BUSINESS_LOGIC_DONE

        # 5. Shaping
        try:
            response = shape_response(self.definition, outcome, state)
        except ContractViolation as e:
            logger.error("[Pipeline] {} broke its response contract: {} {}", self.name, e, e.details)
            raise

        return PipelineOutcome(phase=PipelinePhase.SHAPED, response=response, state=state)


def create_endpoint_handler(
    api: Schema,
    name: str,
    body_handler: BodyHandler,
    session_handler: Optional[SessionHandler] = None,
    error_handler: Optional[ErrorHandler] = None,
) -> EndpointPipeline:
    """
    Build the pipeline for one named endpoint of a schema.

    Raises:
        KeyError: If the schema has no endpoint with that name
    """
    definition = api.endpoints[name]
    return EndpointPipeline(
        definition,
        body_handler=body_handler,
        session_handler=session_handler,
        error_handler=error_handler,
        name=name,
    )
