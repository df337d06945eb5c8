"""
The bounded model/tool loop.

One run alternates model calls and tool executions:

    AWAITING_MODEL -> PARSE -> EXECUTING_TOOL -> AWAITING_MODEL ...
                            -> DONE (no tool call)
    cap reached   -> FINALIZING -> DONE
    model failure, timeout or caller cancellation -> FAILED

Tool failures never end a run; their error text goes back to the model.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum

import structlog

from ..concurrency import run_bounded
from ..config import AgentLimits
from ..exceptions import ModelError, StepCancelledError, StepTimeoutError
from ..llm.base import BaseLLM, LLMMessage
from ..tools.base import ToolContext, ToolResult
from ..tools.executor import ToolExecutor
from .parser import clean_response, parse_tool_call

logger = structlog.get_logger()

MODEL_FAILURE_REPLY = "I'm having trouble thinking right now. Please try again in a moment."
ITERATION_CAP_REPLY = (
    "I've done extensive research but couldn't complete the task fully. Here's what I found."
)
FINALIZE_INSTRUCTION = (
    "You have reached the maximum number of tool calls for this request. "
    "Do NOT call any more tools. Using the tool results above, write your final "
    "answer to the user now."
)


class LoopState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    PARSE = "parse"
    EXECUTING_TOOL = "executing_tool"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class AgentRunState:
    """Everything one run accumulates. Discarded once the run ends."""

    transcript: list[LLMMessage] = field(default_factory=list)
    iteration: int = 0
    state: LoopState = LoopState.AWAITING_MODEL
    final_answer: str | None = None
    tools_used: list[str] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    artifacts: list[str] = field(default_factory=list)
    thoughts: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def terminal(self) -> bool:
        return self.state in (LoopState.DONE, LoopState.FAILED)

    def finish(self, answer: str) -> None:
        self.final_answer = answer
        self.state = LoopState.DONE

    def fail(self, error: str) -> None:
        self.error = error
        self.final_answer = MODEL_FAILURE_REPLY
        self.state = LoopState.FAILED


class AgentLoop:
    """Drives one query through the model and tools."""

    def __init__(
        self,
        llm: BaseLLM,
        executor: ToolExecutor,
        limits: AgentLimits | None = None,
    ):
        self.llm = llm
        self.executor = executor
        self.limits = limits or executor.limits

    async def _call_model(
        self,
        run: AgentRunState,
        system_prompt: str,
        cancel_event: asyncio.Event | None,
        extra: list[LLMMessage] | None = None,
    ) -> str | None:
        """Call the model once. On failure, marks the run FAILED and returns None."""
        messages = run.transcript + (extra or [])
        try:
            response = await run_bounded(
                self.llm.generate(messages=messages, system_prompt=system_prompt),
                self.limits.model_timeout,
                cancel_event,
            )
        except StepCancelledError:
            logger.info("Run cancelled during model call", iteration=run.iteration)
            run.fail("cancelled")
            return None
        except StepTimeoutError as e:
            logger.error("Model call timed out", iteration=run.iteration, timeout=e.timeout)
            run.fail(f"model timed out after {e.timeout:g}s")
            return None
        except ModelError as e:
            logger.error("LLM generation error", iteration=run.iteration, error=str(e))
            run.fail(str(e))
            return None
        except Exception as e:
            logger.error("Unexpected LLM error", iteration=run.iteration, error=str(e))
            run.fail(str(e))
            return None
        return response.content or ""

    async def run(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        context: ToolContext,
        cancel_event: asyncio.Event | None = None,
    ) -> AgentRunState:
        """Run the loop until a final answer, the iteration cap or a failure.

        ``messages`` is the prior history ending with the user's query.
        """
        run = AgentRunState(transcript=list(messages))

        while run.iteration < self.limits.max_iterations:
            if cancel_event is not None and cancel_event.is_set():
                run.fail("cancelled")
                return run

            run.iteration += 1
            run.state = LoopState.AWAITING_MODEL
            text = await self._call_model(run, system_prompt, cancel_event)
            if text is None:
                return run

            run.state = LoopState.PARSE
            call = parse_tool_call(text)
            if call is None:
                run.finish(clean_response(text) or text.strip())
                logger.info("Agent run finished", iterations=run.iteration, tools=run.tools_used)
                return run

            run.state = LoopState.EXECUTING_TOOL
            run.transcript.append(LLMMessage(role="assistant", content=text))
            if call.name == "think" and isinstance(call.arguments.get("thought"), str):
                run.thoughts.append(call.arguments["thought"])

            result = await self.executor.execute(call, context, cancel_event)
            run.tool_results.append(result)
            if self.executor.registry.has(call.name):
                run.tools_used.append(call.name)
            if result.artifact:
                run.artifacts.append(result.artifact)
            run.transcript.append(LLMMessage(role="tool", name=call.name, content=result.to_text()))

        return await self._finalize(run, system_prompt, cancel_event)

    async def _finalize(
        self,
        run: AgentRunState,
        system_prompt: str,
        cancel_event: asyncio.Event | None,
    ) -> AgentRunState:
        """Ask once more for an answer with tool use forbidden."""
        if cancel_event is not None and cancel_event.is_set():
            run.fail("cancelled")
            return run

        run.state = LoopState.FINALIZING
        logger.warning("Iteration cap reached, finalizing", iterations=run.iteration)

        text = await self._call_model(
            run,
            system_prompt,
            cancel_event,
            extra=[LLMMessage(role="user", content=FINALIZE_INSTRUCTION)],
        )
        if text is None:
            return run

        run.finish(clean_response(text) or ITERATION_CAP_REPLY)
        return run
