import platform

from ollama import Client, ResponseError

from voice_dispatch.config.schema import AgentConfig, AppConfig, STTConfig
from voice_dispatch.config.secrets import Secrets


def pull_chat_model(config: AgentConfig, secrets: Secrets) -> bool:
    """Pull the chat model into the Ollama server if it is not there yet."""
    headers = {"Authorization": f"Bearer {secrets.ollama_api_key}"} if secrets.ollama_api_key else None
    client = Client(host=config.host, headers=headers)

    try:
        client.show(config.model)
        print(f"Chat model already available: {config.model}")
        return True
    except ResponseError:
        pass
    except Exception as e:
        print(f"WARNING: Ollama server not reachable ({e}). Skipping model pull.")
        return False

    print(f"Pulling chat model: {config.model}...")
    try:
        client.pull(config.model)
    except Exception as e:
        print(f"WARNING: Failed to pull {config.model}: {e}")
        return False
    print(f"  Pulled {config.model}")
    return True


def download_stt_model(config: STTConfig) -> bool:
    try:
        from faster_whisper import download_model
    except ImportError:
        print(f"faster-whisper not installed on {platform.system()}. Skipping STT model download...")
        return False

    print(f"Downloading STT model: {config.model_size}")
    path = download_model(config.model_size)
    print(f"  Saved to {path}")
    return True


def provision(config: AppConfig, secrets: Secrets) -> bool:
    chat_ready = pull_chat_model(config.agent, secrets)
    stt_ready = True
    if config.agent.transcribe_audio:
        stt_ready = download_stt_model(config.stt)
    return chat_ready and stt_ready
