"""Post-process finished browser output according to the user's result action."""

from __future__ import annotations

import logging

from scout_service.config.settings import Settings
from scout_service.http import Transport
from scout_service.results.graph import ChatModel, build_result_graph, initial_state
from scout_service.results.llm import ChatCompletionsClient
from scout_service.results.tools import GateProvider, ToolExecutor, build_registry

logger = logging.getLogger(__name__)

RESULT_PROMPT = (
    "You are processing the output of a browser automation task. "
    "The user wants you to: {result_action}\n\n"
    "Browser Run Output:\n{raw_output}\n\n"
    "Please process this information according to the user's request and provide a "
    "clear, actionable response. If the user's request involves sending an email, "
    "use the sendEmail tool."
)


def combine_output(raw_output: str, processed_text: str) -> str:
    return (
        f"=== Browser Run Output ===\n{raw_output}\n\n"
        f"=== Result Action Processing ===\n{processed_text}"
    )


class ResultProcessor:
    """Runs the bounded model/tool loop; LLM failures propagate to the caller."""

    def __init__(self, *, model: ChatModel, executor: ToolExecutor, max_steps: int = 10) -> None:
        self.max_steps = max_steps
        self._graph = build_result_graph(model=model, executor=executor)

    def process(self, raw_output: str, result_action: str) -> str:
        prompt = RESULT_PROMPT.format(result_action=result_action, raw_output=raw_output)
        state = self._graph.invoke(
            initial_state(prompt, max_steps=self.max_steps),
            config={"recursion_limit": self.max_steps * 2 + 5},
        )
        events = state.get("tool_events", [])
        logger.info(
            "result_processor event=processed steps=%s tool_calls=%s failed_tools=%s",
            state.get("steps", 0),
            len(events),
            sum(1 for event in events if event["status"] != "ok"),
        )
        return combine_output(raw_output, state.get("final_text", ""))


def build_result_processor(
    settings: Settings,
    *,
    transport: Transport,
    gate_provider: GateProvider,
    llm_transport: Transport | None = None,
) -> ResultProcessor:
    """``transport`` carries tool calls; the model uses ``llm_transport`` when given."""
    model = ChatCompletionsClient(
        api_key=settings.resolved_openai_api_key(),
        model=settings.llm_model,
        base_url=settings.llm_base_url,
        transport=llm_transport or transport,
        max_retries=settings.llm_max_retries,
        backoff_s=settings.llm_backoff_s,
    )
    executor = ToolExecutor(
        registry=build_registry(
            gate_provider=gate_provider,
            email_api_url=settings.email_api_url(),
        ),
        tool_timeout_s=settings.tool_timeout_s,
        max_retries=settings.tool_max_retries,
    )
    return ResultProcessor(model=model, executor=executor, max_steps=settings.result_max_steps)
