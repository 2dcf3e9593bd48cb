from dataclasses import dataclass, field


@dataclass(frozen=True)
class AgentConfig:
    model: str = "qwen2.5:1.5b"
    host: str | None = None
    system_prompt: str = ""  # Empty renders prompts/system_prompt.txt
    temperature: float = 0.3
    num_ctx: int = 2048
    num_thread: int = 4
    warmup: bool = False
    transcribe_audio: bool = True
    log_transcriptions: bool = False


@dataclass(frozen=True)
class DispatchConfig:
    max_turns: int = 5
    request_timeout_seconds: float | None = 120.0
    log_tool_calls: bool = True


@dataclass(frozen=True)
class STTConfig:
    model_size: str = "base.en"
    device: str = "cpu"
    compute_type: str = "int8"
    beam_size: int = 5
    language: str = "en"
    vad_filter: bool = True


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    file: str = "logs/voice_dispatch.log"
    max_bytes: int = 5_242_880
    backup_count: int = 3


@dataclass(frozen=True)
class AppConfig:
    agent: AgentConfig = field(default_factory=AgentConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    stt: STTConfig = field(default_factory=STTConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
