"""Tool registry and schema-enforcing executor for the result processor."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from scout_service.errors import ConfigurationError, UpstreamError, UpstreamTimeoutError
from scout_service.http import HttpRequest
from scout_service.payments.gate import PaymentGate
from scout_service.results.schemas import SendEmailInput, SendEmailOutput

logger = logging.getLogger(__name__)

SEND_EMAIL_TOOL = "sendEmail"
SEND_EMAIL_DESCRIPTION = (
    "Send an email via x402 protected API. Use this when the user requests email notifications."
)

GateProvider = Callable[[], PaymentGate]

OK = "ok"
FAILED = "failed"
UNKNOWN = "unknown"


@dataclass(frozen=True)
class ToolSpec:
    input_model: type[BaseModel]
    output_model: type[BaseModel]
    fn: Callable[[BaseModel], BaseModel]
    description: str = ""
    paid: bool = False


def build_send_email_tool(
    *,
    gate_provider: GateProvider,
    email_api_url: str,
) -> Callable[[SendEmailInput], SendEmailOutput]:
    url = f"{email_api_url.rstrip('/')}/api/send-email"

    def _send_email(payload: SendEmailInput) -> SendEmailOutput:
        try:
            gate = gate_provider()
        except ConfigurationError as exc:
            raise ConfigurationError(f"{exc.message} - cannot send email") from exc
        logger.info("result_tools event=send_email url=%s subject=%s", url, payload.subject)
        paid = gate.send(
            HttpRequest(
                method="POST",
                url=url,
                json_body={"to": payload.to, "subject": payload.subject, "html": payload.html},
            )
        )
        if not paid.response.ok:
            raise UpstreamError(f"Email service responded with status {paid.response.status}")
        return SendEmailOutput(
            delivered=True,
            status_code=paid.response.status,
            response=paid.response.json(),
            payment=paid.receipt,
        )

    return _send_email


def build_registry(*, gate_provider: GateProvider, email_api_url: str) -> dict[str, ToolSpec]:
    return {
        SEND_EMAIL_TOOL: ToolSpec(
            input_model=SendEmailInput,
            output_model=SendEmailOutput,
            fn=build_send_email_tool(gate_provider=gate_provider, email_api_url=email_api_url),
            description=SEND_EMAIL_DESCRIPTION,
            paid=True,
        ),
    }


def tool_definitions(registry: dict[str, ToolSpec]) -> list[dict[str, Any]]:
    """Function-calling definitions advertised to the model."""
    definitions: list[dict[str, Any]] = []
    for name in sorted(registry):
        spec = registry[name]
        definitions.append(
            {
                "type": "function",
                "function": {
                    "name": name,
                    "description": spec.description,
                    "parameters": spec.input_model.model_json_schema(),
                },
            }
        )
    return definitions


class ToolExecutor:
    """Validate, run, and report registered tools.

    Free tools get a thread timeout and optional retries. Paid tools run inline,
    bounded by the transport timeout, and are attempted exactly once: a payment
    that may have settled is never repeated, and a paid call whose answer never
    arrived is reported as ``unknown`` rather than ``failed``.
    """

    def __init__(
        self,
        *,
        registry: dict[str, ToolSpec],
        tool_timeout_s: float = 60.0,
        max_retries: int = 0,
        backoff_s: float = 0.0,
    ) -> None:
        self.registry = registry
        self.tool_timeout_s = tool_timeout_s
        self.max_retries = max_retries
        self.backoff_s = backoff_s

    def execute(self, tool_name: str, args: dict[str, Any]) -> dict[str, Any]:
        started_at = time.perf_counter()
        spec = self.registry.get(tool_name)
        if spec is None:
            error = f"Unknown tool: {tool_name}"
            return self._report(tool_name, started_at, FAILED, 1, error=error)
        try:
            payload = spec.input_model.model_validate(args)
        except ValidationError as exc:
            return self._report(tool_name, started_at, FAILED, 1, error=str(exc))

        if spec.paid:
            return self._execute_paid(tool_name, spec, payload, started_at)

        attempts = self.max_retries + 1
        error = ""
        for attempt in range(1, attempts + 1):
            try:
                output = self._run_with_timeout(tool_name, spec, payload)
            except Exception as exc:  # noqa: BLE001
                error = str(exc)
                if attempt < attempts and self.backoff_s > 0:
                    time.sleep(self.backoff_s)
                continue
            return self._report(tool_name, started_at, OK, attempt, output=output)
        return self._report(tool_name, started_at, FAILED, attempts, error=error)

    def _execute_paid(
        self,
        tool_name: str,
        spec: ToolSpec,
        payload: BaseModel,
        started_at: float,
    ) -> dict[str, Any]:
        try:
            output = _dump(spec, spec.fn(payload))
        except UpstreamTimeoutError as exc:
            return self._report(
                tool_name,
                started_at,
                UNKNOWN,
                1,
                error=f"{exc.message}; the payment may have settled, do not call again",
            )
        except Exception as exc:  # noqa: BLE001
            return self._report(tool_name, started_at, FAILED, 1, error=str(exc))
        return self._report(tool_name, started_at, OK, 1, output=output)

    def _run_with_timeout(
        self,
        tool_name: str,
        spec: ToolSpec,
        payload: BaseModel,
    ) -> dict[str, Any]:
        pool = ThreadPoolExecutor(max_workers=1)
        future = pool.submit(spec.fn, payload)
        try:
            raw_output = future.result(timeout=self.tool_timeout_s)
        except FutureTimeout as exc:
            raise TimeoutError(
                f"Tool '{tool_name}' timed out after {self.tool_timeout_s:g}s"
            ) from exc
        finally:
            pool.shutdown(wait=False)
        return _dump(spec, raw_output)

    @staticmethod
    def _report(
        tool_name: str,
        started_at: float,
        status: str,
        attempts: int,
        *,
        output: dict[str, Any] | None = None,
        error: str = "",
    ) -> dict[str, Any]:
        elapsed_ms = round((time.perf_counter() - started_at) * 1000.0, 2)
        if status == OK:
            return {
                "tool": tool_name,
                "status": status,
                "output": output,
                "attempts": attempts,
                "duration_ms": elapsed_ms,
            }
        logger.warning(
            "result_tools event=tool_%s tool=%s attempts=%s error=%s",
            status,
            tool_name,
            attempts,
            error,
        )
        return {
            "tool": tool_name,
            "status": status,
            "error": error,
            "attempts": attempts,
            "duration_ms": elapsed_ms,
        }


def _dump(spec: ToolSpec, raw_output: Any) -> dict[str, Any]:
    return spec.output_model.model_validate(raw_output).model_dump(mode="json")
