import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any

from voice_dispatch.config.loader import load_config
from voice_dispatch.config.schema import AppConfig
from voice_dispatch.config.secrets import Secrets, load_secrets
from voice_dispatch.core.dispatcher import DispatchLoop
from voice_dispatch.core.errors import ConfigurationError
from voice_dispatch.core.result import DispatchResult
from voice_dispatch.provision import provision
from voice_dispatch.services.chat import OllamaChatProvider
from voice_dispatch.services.stt import SpeechToTextService
from voice_dispatch.tools.builtin.device_control import device_control_tool
from voice_dispatch.tools.builtin.web_fetch import web_fetch_tool
from voice_dispatch.tools.builtin.web_search import web_search_tool
from voice_dispatch.tools.registry import ToolRegistry
from voice_dispatch.util.logging import setup_logging
from voice_dispatch.util.prompt_loader import PromptLoader

logger = logging.getLogger(__name__)


def build_registry(secrets: Secrets) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(device_control_tool())
    registry.register(web_fetch_tool())
    if secrets.has_brave_search():
        registry.register(web_search_tool(secrets.brave_search_api_key))
    else:
        logger.info("BRAVE_SEARCH_API_KEY not set, web_search tool disabled")
    return registry


def _load_json(path: str | None) -> dict[str, Any]:
    if not path:
        return {}
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a JSON object")
    return data


async def dispatch(args: argparse.Namespace, config: AppConfig, secrets: Secrets) -> DispatchResult:
    stt = SpeechToTextService(config.stt) if args.audio and config.agent.transcribe_audio else None
    provider = OllamaChatProvider(config.agent, secrets, stt)
    loop = DispatchLoop(config.dispatch, build_registry(secrets), provider.new_session)

    prompt = args.print or PromptLoader.build_command_prompt(_load_json(args.context_data))
    request_context = _load_json(args.context)

    cancel_event = asyncio.Event()
    event_loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        event_loop.add_signal_handler(sig, cancel_event.set)

    await provider.start()
    try:
        return await loop.process(
            prompt,
            audio_path=args.audio,
            context=request_context,
            cancel_event=cancel_event,
        )
    finally:
        await provider.stop()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Voice command dispatcher")
    parser.add_argument("--config", type=Path, default=Path("config.yaml"), help="Path to the YAML config")
    parser.add_argument("--env", type=Path, default=Path(".env"), help="Path to the .env file")
    parser.add_argument("--print", action="store", help="Dispatch a single text command and print the result")
    parser.add_argument("--audio", action="store", help="Path to a recorded voice command")
    parser.add_argument("--context", action="store", help="JSON file with request context passed to tools")
    parser.add_argument("--context-data", action="store", help="JSON file with application data embedded in the prompt")
    parser.add_argument("--provision", action="store_true", help="Pull the chat model and download the STT model")
    args = parser.parse_args(argv)

    config = load_config(args.config, args.env)
    secrets = load_secrets(args.env)
    setup_logging(config.logging, console=not (args.print or args.audio))

    if args.provision:
        return 0 if provision(config, secrets) else 1

    if not (args.print or args.audio):
        parser.error("one of --print, --audio or --provision is required")

    logger.info("Starting voice dispatch")
    result = asyncio.run(dispatch(args, config, secrets))
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
