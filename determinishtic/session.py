"""Think session driver.

One ``ThinkSession`` drives one think block against an agent channel:

    ASSEMBLING -> AWAITING_AGENT -> DISPATCHING_TOOL -> AWAITING_AGENT ... -> COMPLETED
                                                                          \\-> FAILED

Events are handled strictly in the order the agent issues them, one at a
time. User tools run through the registry's invocation slot; calls to
``return_result`` go to the result contract. Anything the agent can fix
(unknown tool, bad arguments, bad output, a failing callable, a result that
doesn't decode) is reported back to it as a tool error and only raised once
its budget in ``ThinkConfig`` is spent. Transport problems and cancellation
end the session immediately.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
import uuid
from typing import Generic, TypeVar

from determinishtic.agent import (
    AgentChannel,
    AgentConnector,
    SessionEnded,
    ToolCallEvent,
    ToolManifestEntry,
    ToolResponse,
)
from determinishtic.config import ThinkConfig
from determinishtic.errors import (
    CallableError,
    DeterminishticError,
    InputDecodeError,
    NoResultError,
    OutputEncodeError,
    ResultDecodeError,
    SessionCancelledError,
    UnknownToolError,
    wrap_error,
)
from determinishtic.result import ResultContract, recognize_completion
from determinishtic.tools import ToolCallRecord, ToolContext, ToolRegistry, _truncate

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionState(enum.Enum):
    ASSEMBLING = "assembling"
    AWAITING_AGENT = "awaiting_agent"
    DISPATCHING_TOOL = "dispatching_tool"
    COMPLETED = "completed"
    FAILED = "failed"


_TERMINAL = frozenset({SessionState.COMPLETED, SessionState.FAILED})


class ThinkSession(Generic[T]):
    """Ephemeral state for one think block. Single use."""

    def __init__(
        self,
        prompt: str,
        registry: ToolRegistry,
        contract: ResultContract[T],
        connector: AgentConnector,
        *,
        config: ThinkConfig | None = None,
        instructions: str | None = None,
    ) -> None:
        self.session_id = uuid.uuid4().hex[:12]
        self.prompt = prompt
        self.registry = registry
        self.contract = contract
        self.connector = connector
        self.config = config or ThinkConfig()
        self.instructions = instructions
        self.state = SessionState.ASSEMBLING
        self.transitions: list[SessionState] = [SessionState.ASSEMBLING]
        self.tool_calls: list[ToolCallRecord] = []
        self.unknown_tool_calls = 0
        self.tool_errors = 0
        self.error: BaseException | None = None
        self._channel: AgentChannel | None = None
        self._started = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def manifest(self) -> list[ToolManifestEntry]:
        """User tools followed by the result tool."""
        return [*self.registry.manifest(), self.contract.manifest_entry()]

    @property
    def result_retries(self) -> int:
        """return_result payloads rejected and reported back to the agent."""
        return min(self.contract.failures, self.contract.max_retries)

    @property
    def finished(self) -> bool:
        return self.state in _TERMINAL

    def _transition(self, state: SessionState) -> None:
        if self.state in _TERMINAL:
            return
        logger.debug("session %s: %s -> %s", self.session_id, self.state.value, state.value)
        self.state = state
        self.transitions.append(state)

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    async def run(self) -> T:
        """Drive the session to completion and return the decoded result.

        Raises:
            DeterminishticError: terminal failure (transport, no result,
                exhausted retry budget).
            asyncio.CancelledError: the surrounding task was cancelled; the
                session is FAILED and no further tool runs.
        """
        if self._started:
            raise RuntimeError(f"session {self.session_id} has already been run")
        self._started = True

        manifest = self.manifest
        logger.info(
            "executing think block %s (prompt_len=%d, tools=%d)",
            self.session_id,
            len(self.prompt),
            len(manifest) - 1,
        )
        logger.debug("session %s full prompt:\n%s", self.session_id, self.prompt)

        try:
            try:
                self._channel = await self.connector.open_session(
                    self.prompt,
                    manifest,
                    instructions=self.instructions,
                    server_name=self.config.server_name,
                )
            except (DeterminishticError, asyncio.CancelledError):
                raise
            except Exception as exc:
                raise wrap_error(exc) from exc
            self._transition(SessionState.AWAITING_AGENT)

            while True:
                event = await self._next_event()
                if isinstance(event, SessionEnded):
                    if event.error is not None:
                        raise wrap_error(event.error) from event.error
                    logger.warning(
                        "think block %s ended without a result (reason=%s)",
                        self.session_id,
                        event.reason,
                    )
                    raise NoResultError(event.reason)

                if recognize_completion(event.tool_name):
                    if await self._handle_result(event):
                        self._transition(SessionState.COMPLETED)
                        logger.info(
                            "think block %s completed (%d tool calls, %d result retries)",
                            self.session_id,
                            len(self.tool_calls),
                            self.result_retries,
                        )
                        return self.contract.value  # type: ignore[return-value]
                    continue

                if event.tool_name not in self.registry:
                    await self._reject_unknown(event)
                    continue

                self._transition(SessionState.DISPATCHING_TOOL)
                await self._dispatch(event)
                self._transition(SessionState.AWAITING_AGENT)
        except BaseException as exc:
            self.error = exc
            self._transition(SessionState.FAILED)
            if isinstance(exc, asyncio.CancelledError):
                logger.warning("think block %s cancelled", self.session_id)
            else:
                logger.debug("think block %s failed: %s", self.session_id, exc)
            raise
        finally:
            self.registry.seal()
            await self._close_channel()

    async def _next_event(self) -> ToolCallEvent | SessionEnded:
        assert self._channel is not None
        try:
            return await self._channel.next_event()
        except (DeterminishticError, asyncio.CancelledError):
            raise
        except Exception as exc:
            raise wrap_error(exc) from exc

    async def _respond(self, response: ToolResponse) -> None:
        assert self._channel is not None
        try:
            await self._channel.respond(response)
        except (DeterminishticError, asyncio.CancelledError):
            raise
        except Exception as exc:
            raise wrap_error(exc) from exc

    async def _close_channel(self) -> None:
        channel, self._channel = self._channel, None
        if channel is None:
            return
        try:
            await channel.close()
        except Exception as exc:
            logger.warning("error closing agent channel for %s: %s", self.session_id, exc)

    async def _handle_result(self, event: ToolCallEvent) -> bool:
        """Offer a return_result call to the contract. True when complete."""
        record = ToolCallRecord(tool=event.tool_name, call_id=event.call_id, arguments=event.input_payload)
        self.tool_calls.append(record)
        try:
            ack = self.contract.complete(event.input_payload)
        except ResultDecodeError as exc:
            record.error = str(exc)
            record.error_type = type(exc).__name__
            await self._respond(ToolResponse(event.call_id, error=exc.to_payload()))
            if self.contract.exhausted:
                raise
            return False
        record.result = ack
        await self._respond(ToolResponse(event.call_id, output=ack))
        return True

    async def _reject_unknown(self, event: ToolCallEvent) -> None:
        """Report a call to an unregistered tool without leaving AWAITING_AGENT."""
        record = ToolCallRecord(tool=event.tool_name, call_id=event.call_id, arguments=event.input_payload)
        self.tool_calls.append(record)
        self.unknown_tool_calls += 1
        exc = UnknownToolError(event.tool_name)
        await self._report(record, exc, event.call_id)
        if self.unknown_tool_calls > self.config.max_unknown_tool_calls:
            raise exc

    async def _dispatch(self, event: ToolCallEvent) -> None:
        record = ToolCallRecord(tool=event.tool_name, call_id=event.call_id, arguments=event.input_payload)
        self.tool_calls.append(record)
        logger.debug("session %s: dispatching %s (%s)", self.session_id, event.tool_name, event.call_id)
        context = ToolContext(
            tool_name=event.tool_name,
            call_id=event.call_id,
            session_id=self.session_id,
            connector=self.connector,
            config=self.config,
        )

        t0 = time.monotonic()
        try:
            output = await self.registry.invoke(event.tool_name, event.input_payload, context)
        except asyncio.CancelledError:
            record.error = "cancelled during execution"
            record.error_type = "CancelledError"
            raise
        except SessionCancelledError:
            raise
        except (InputDecodeError, OutputEncodeError, CallableError) as exc:
            self.tool_errors += 1
            await self._report(record, exc, event.call_id)
            limit = self.config.max_tool_errors
            if limit is not None and self.tool_errors > limit:
                raise
            return
        finally:
            record.latency_s = round(time.monotonic() - t0, 3)

        output = _truncate(output, self.config.tool_result_max_length)
        record.result = output
        await self._respond(ToolResponse(event.call_id, output=output))

    async def _report(self, record: ToolCallRecord, exc: DeterminishticError, call_id: str) -> None:
        record.error = str(exc)
        record.error_type = type(exc).__name__
        logger.warning("tool %s failed, reporting to agent: %s", record.tool, exc)
        await self._respond(ToolResponse(call_id, error=exc.to_payload()))

