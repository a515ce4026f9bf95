"""Static tool catalog advertised by ``tools/list``."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ToolName(str, Enum):
    CREATE_SCOUT = "create_scout"
    GET_SCOUT_STATUS = "get_scout_status"


_AUTH_TOKEN = {"type": "string", "description": "JWT authentication token from the user"}

TOOL_CATALOG: list[dict[str, Any]] = [
    {
        "name": ToolName.CREATE_SCOUT.value,
        "description": (
            "Create and immediately start a new scout with instructions for web automation. "
            "This operation costs $0.15 USDC and is automatically paid using x402 payment "
            "protocol. The scout will start running immediately in browser-use. Use "
            "get_scout_status to check for completion."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "name": {
                    "type": "string",
                    "description": "Name of the scout/task (1-100 characters)",
                },
                "instructions": {
                    "type": "string",
                    "description": (
                        'What the scout should do on the web (e.g., "Browse to amazon.com '
                        'and check iPhone 15 price")'
                    ),
                },
                "resultAction": {
                    "type": "string",
                    "description": (
                        'Optional: What to do with the results (e.g., "Send me an email if '
                        'price drops below $800")'
                    ),
                },
                "authToken": _AUTH_TOKEN,
            },
            "required": ["name", "instructions", "authToken"],
        },
    },
    {
        "name": ToolName.GET_SCOUT_STATUS.value,
        "description": (
            "Check the status of a running scout. Returns current status and results if "
            "completed. FREE - no payment required."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "scoutId": {
                    "type": "string",
                    "description": "ID of the scout to check (obtained from create_scout)",
                },
                "authToken": _AUTH_TOKEN,
            },
            "required": ["scoutId", "authToken"],
        },
    },
]
