"""LangGraph tool-use loop for result processing."""

from __future__ import annotations

import json
from typing import Any, Protocol, TypedDict

from langgraph.graph import END, StateGraph

from scout_service.results.llm import AssistantMessage
from scout_service.results.tools import ToolExecutor, tool_definitions


class ChatModel(Protocol):
    def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict[str, Any]] | None = None,
    ) -> AssistantMessage: ...


class ResultState(TypedDict, total=False):
    messages: list[dict[str, Any]]
    pending_tool_calls: list[dict[str, Any]]
    steps: int
    max_steps: int
    tool_events: list[dict[str, Any]]
    final_text: str


def initial_state(prompt: str, *, max_steps: int) -> ResultState:
    return {
        "messages": [{"role": "user", "content": prompt}],
        "pending_tool_calls": [],
        "steps": 0,
        "max_steps": max_steps,
        "tool_events": [],
        "final_text": "",
    }


def build_result_graph(*, model: ChatModel, executor: ToolExecutor):
    tools = tool_definitions(executor.registry)

    def call_model(state: ResultState) -> ResultState:
        messages = list(state.get("messages", []))
        reply = model.complete(messages, tools=tools)
        messages.append(reply.to_message())
        return {
            "messages": messages,
            "pending_tool_calls": [call.model_dump() for call in reply.tool_calls],
            "steps": int(state.get("steps", 0)) + 1,
            "final_text": reply.content or "",
        }

    def run_tools(state: ResultState) -> ResultState:
        messages = list(state.get("messages", []))
        events = list(state.get("tool_events", []))
        for call in state.get("pending_tool_calls", []):
            function = call.get("function", {})
            name = str(function.get("name", ""))
            result = executor.execute(name, _arguments(function.get("arguments")))
            events.append(
                {
                    "tool": name,
                    "status": result["status"],
                    "attempts": result["attempts"],
                    "duration_ms": result["duration_ms"],
                }
            )
            if result["status"] == "ok":
                content = {"status": "ok", "output": result["output"]}
            else:
                content = {"status": result["status"], "error": result["error"]}
            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": call.get("id", ""),
                    "content": json.dumps(content, ensure_ascii=True),
                }
            )
        return {"messages": messages, "pending_tool_calls": [], "tool_events": events}

    def _next_step(state: ResultState) -> str:
        if not state.get("pending_tool_calls"):
            return "done"
        if int(state.get("steps", 0)) >= int(state.get("max_steps", 1)):
            return "done"
        return "tools"

    graph = StateGraph(ResultState)

    graph.add_node("call_model", call_model)
    graph.add_node("run_tools", run_tools)

    graph.set_entry_point("call_model")
    graph.add_conditional_edges("call_model", _next_step, {"tools": "run_tools", "done": END})
    graph.add_edge("run_tools", "call_model")

    return graph.compile()


def _arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw or "{}")
    except (TypeError, json.JSONDecodeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}
