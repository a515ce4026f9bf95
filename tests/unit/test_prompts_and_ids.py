from __future__ import annotations

import re

from scout_service.config.settings import Settings
from scout_service.scouts.ids import new_run_id, new_scout_id
from scout_service.scouts.prompts import build_task_prompt


def test_ids_have_prefix_timestamp_and_random_suffix() -> None:
    scout_id = new_scout_id()
    run_id = new_run_id()

    assert re.fullmatch(r"scout_\d{13}_[0-9a-z]{9}", scout_id)
    assert re.fullmatch(r"run_\d{13}_[0-9a-z]{9}", run_id)
    assert new_scout_id() != scout_id


def test_prompt_without_result_action_is_instructions() -> None:
    assert build_task_prompt("Check the weather", None) == "Check the weather"
    assert build_task_prompt("Check the weather", "   ") == "Check the weather"


def test_prompt_with_result_action_quotes_it() -> None:
    prompt = build_task_prompt("Check the weather", "Email me if it rains")

    assert prompt.startswith("Check the weather\n\nIMPORTANT NOTE FOR BROWSER AGENT")
    assert '"Email me if it rains"' in prompt
    assert "should NOT attempt to perform yourself" in prompt


def test_settings_switch_network_with_environment() -> None:
    preview = Settings(env="PREVIEW", payment_mint="", solana_rpc_url="")
    live = Settings(env="LIVE", payment_mint="", solana_rpc_url="")

    assert preview.payment_network() == "solana-devnet"
    assert preview.resolved_payment_mint() == "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU"
    assert live.payment_network() == "solana-mainnet"
    assert live.resolved_payment_mint() == "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
    assert live.email_api_url() == live.email_api_url_live
    assert preview.email_api_url() == preview.email_api_url_preview
