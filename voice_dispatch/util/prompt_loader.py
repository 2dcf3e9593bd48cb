import json
import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from jinja2 import Template

from voice_dispatch.config.schema import AgentConfig

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"


class PromptLoader:
    @staticmethod
    def _load_template(name: str) -> Template:
        with open(PROMPTS_DIR / name) as f:
            return Template(f.read())

    @staticmethod
    def load_system_prompt(config: AgentConfig, tool_names: Iterable[str]) -> str:
        if config.system_prompt:
            return config.system_prompt
        template = PromptLoader._load_template("system_prompt.txt")
        return template.render(
            tools=list(tool_names),
            date=datetime.now().strftime("%B %d, %Y"),
        ).strip()

    @staticmethod
    def build_command_prompt(context_data: Mapping[str, Any] | None = None) -> str:
        """
        Render the user-turn prompt. Application data the model should
        condition on is embedded as pretty-printed JSON.
        """
        context_json = ""
        if context_data:
            context_json = json.dumps(context_data, indent=2, default=str, ensure_ascii=False)
        template = PromptLoader._load_template("command_prompt.txt")
        prompt = template.render(context_json=context_json).strip()
        logger.debug(f"Command prompt: {prompt}")
        return prompt
