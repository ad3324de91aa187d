# run.py
# Entry point. Config and wiring only, no logic lives here.
#
# Every collaborator (settings, model client, bridge, sandbox, registry) is
# built once here and handed to the session explicitly.

import sys

from ooda_harness import display
from ooda_harness.config import Settings
from ooda_harness.hue import HueBridge, discover_bridge
from ooda_harness.llm import OpenAIModel
from ooda_harness.sandbox import SandboxEngine
from ooda_harness.session import Session
from ooda_harness.tools import build_registry

DEFAULT_QUESTION = "What is the sum of the squares of the integers from 1 to 20?"


def _build_bridge(settings: Settings) -> HueBridge | None:
    if not settings.hue_username:
        return None
    host = settings.hue_bridge_ip or discover_bridge()
    return HueBridge(host, settings.hue_username)


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    question = " ".join(args).strip() or DEFAULT_QUESTION

    settings = Settings.from_env()
    model = OpenAIModel(
        model=settings.model,
        api_key=settings.api_key,
        base_url=settings.base_url,
        temperature=settings.temperature,
        max_retries=settings.max_retries,
        request_timeout=settings.request_timeout,
    )
    engine = SandboxEngine(
        timeout=settings.sandbox_timeout,
        memory_limit_mb=settings.sandbox_memory_mb,
        max_output=settings.sandbox_max_output,
    )
    bridge = _build_bridge(settings)
    registry = build_registry(engine, bridge)

    display.banner(settings.model, settings.max_rounds, registry.names())

    try:
        outcome = Session(question, registry, model, settings).run()
    finally:
        if bridge is not None:
            bridge.close()

    if outcome.status == "concluded":
        print(f"\n[RESULT]\n{outcome.conclusion}\n")
        return 0

    print(f"\n[{outcome.status.upper()}]\n{outcome.error}\n")
    return 1


if __name__ == "__main__":
    sys.exit(main())
