import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from ollama import AsyncClient

from voice_dispatch.config.schema import AgentConfig
from voice_dispatch.config.secrets import Secrets
from voice_dispatch.core.conversation import Conversation, Message
from voice_dispatch.core.errors import ProviderError
from voice_dispatch.core.result import ToolCallRequest, ToolResult
from voice_dispatch.services.stt import SpeechToTextService, TranscriptionError
from voice_dispatch.util.prompt_loader import PromptLoader

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatResponse:
    text: str = ""
    tool_calls: tuple[ToolCallRequest, ...] = ()
    raw: Any = field(default=None, compare=False, repr=False)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class ChatSession(Protocol):
    """One conversation with the model vendor, scoped to a single dispatch."""

    async def ask(self, prompt: str, audio_path: str | Path | None = None) -> ChatResponse: ...

    async def continue_with(self, results: Sequence[ToolResult]) -> ChatResponse: ...


class OllamaChatSession:
    """ChatSession over Ollama's chat API. Audio is transcribed locally first."""

    def __init__(
        self,
        client: AsyncClient,
        config: AgentConfig,
        system_prompt: str,
        tool_schemas: Sequence[Mapping[str, Any]] = (),
        stt: SpeechToTextService | None = None,
    ) -> None:
        self._client = client
        self._config = config
        self._stt = stt
        self._tools = [{"type": "function", "function": dict(s)} for s in tool_schemas]
        self._conversation = Conversation(system_prompt)
        self._turn = 0

    @property
    def conversation(self) -> Conversation:
        return self._conversation

    async def ask(self, prompt: str, audio_path: str | Path | None = None) -> ChatResponse:
        self._conversation.add_message(Message(role="user", content=prompt))
        if audio_path is not None:
            transcript = await self._transcribe(audio_path)
            self._conversation.add_message(Message(role="user", content=transcript))
        return await self._chat()

    async def continue_with(self, results: Sequence[ToolResult]) -> ChatResponse:
        for result in results:
            self._conversation.add_message(Message(
                role="tool",
                content=result.content,
                tool_name=result.tool_name,
            ))
        return await self._chat()

    async def _transcribe(self, audio_path: str | Path) -> str:
        if self._stt is None or not self._config.transcribe_audio:
            raise ProviderError("Audio payload given but no transcriber is configured")
        try:
            transcript = await self._stt.transcribe_file(audio_path)
        except TranscriptionError as e:
            raise ProviderError(str(e)) from e
        if not transcript:
            raise ProviderError("No speech detected in audio payload")
        if self._config.log_transcriptions:
            logger.info(f"Transcribed: {transcript!r}")
        return transcript

    async def _chat(self) -> ChatResponse:
        self._turn += 1
        start = time.monotonic()
        try:
            response = await self._client.chat(
                model=self._config.model,
                messages=self._conversation.get_ollama_messages(),
                tools=self._tools or None,
                options={
                    "temperature": self._config.temperature,
                    "num_ctx": self._config.num_ctx,
                    "num_thread": self._config.num_thread,
                },
            )
            message = response["message"]
            content = message.get("content") or ""
            raw_calls = message.get("tool_calls") or []
            tool_calls = tuple(
                self._parse_tool_call(tc, index) for index, tc in enumerate(raw_calls)
            )
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"Ollama chat failed: {e}") from e

        logger.info(
            f"Ollama turn {self._turn} answered in {time.monotonic() - start:.2f}s "
            f"with {len(tool_calls)} tool call(s)"
        )

        self._conversation.add_message(Message(
            role="assistant",
            content=content,
            tool_calls=[
                {"function": {"name": tc.tool_name, "arguments": dict(tc.arguments)}}
                for tc in tool_calls
            ] or None,
        ))
        return ChatResponse(text=content, tool_calls=tool_calls, raw=response)

    def _parse_tool_call(self, tool_call: Any, index: int) -> ToolCallRequest:
        function = tool_call["function"]
        name = function["name"]
        arguments = function.get("arguments") or {}
        if not isinstance(arguments, Mapping):
            raise ProviderError(f"Tool call '{name}' has non-object arguments")
        call_id = tool_call.get("id") if isinstance(tool_call, Mapping) else None
        return ToolCallRequest(
            call_id=call_id or f"call_{self._turn}_{index}",
            tool_name=name,
            arguments=dict(arguments),
        )


class OllamaChatProvider:
    """Owns the Ollama client and hands out one ChatSession per dispatch."""

    def __init__(
        self,
        config: AgentConfig,
        secrets: Secrets | None = None,
        stt: SpeechToTextService | None = None,
    ) -> None:
        self._config = config
        self._secrets = secrets or Secrets()
        self._stt = stt
        self._client: AsyncClient | None = None

    async def start(self) -> None:
        client_options: dict[str, Any] = {}
        if self._secrets.ollama_api_key:
            client_options["headers"] = {"Authorization": f"Bearer {self._secrets.ollama_api_key}"}
        self._client = AsyncClient(host=self._config.host, **client_options)
        logger.info(f"Chat provider initialized with model: {self._config.model}")

        if self._stt is not None and self._config.transcribe_audio and not self._stt.is_loaded:
            await self._stt.start()
        if self._config.warmup:
            await self._warmup()

    async def _warmup(self) -> None:
        """Send a one-token request to load the model before the first dispatch."""
        logger.info(f"Warming up model: {self._config.model}")
        start = time.monotonic()
        try:
            await self._client.chat(
                model=self._config.model,
                messages=[{"role": "user", "content": "hi"}],
                options={"num_predict": 1},
            )
            logger.info(f"Model warmup completed in {time.monotonic() - start:.1f}s")
        except Exception:
            logger.warning("Model warmup failed, first request may be slow", exc_info=True)

    async def stop(self) -> None:
        self._client = None
        if self._stt is not None:
            await self._stt.stop()

    def new_session(self, tool_schemas: Sequence[Mapping[str, Any]]) -> OllamaChatSession:
        if self._client is None:
            raise ProviderError("Chat provider not started")
        system_prompt = PromptLoader.load_system_prompt(
            self._config, [schema["name"] for schema in tool_schemas]
        )
        return OllamaChatSession(
            client=self._client,
            config=self._config,
            system_prompt=system_prompt,
            tool_schemas=tool_schemas,
            stt=self._stt,
        )
