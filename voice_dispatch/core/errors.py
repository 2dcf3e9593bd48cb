class VoiceDispatchError(Exception):
    """Base class for all voice-dispatch errors."""


class SchemaError(VoiceDispatchError):
    """A tool declaration is malformed. Raised at definition time."""


class ArgumentError(VoiceDispatchError):
    """Arguments supplied by the model do not satisfy a tool's schema."""

    def __init__(self, parameter: str, message: str) -> None:
        super().__init__(message)
        self.parameter = parameter


class MissingArgumentError(ArgumentError):
    pass


class ArgumentValidationError(ArgumentError):
    pass


class ConfigurationError(VoiceDispatchError):
    pass


class ProviderError(VoiceDispatchError):
    """The model vendor call failed (network, auth, quota, bad response)."""


class DispatchTimeout(VoiceDispatchError):
    pass


class TurnLimitExceeded(VoiceDispatchError):
    pass


class DispatchControl(VoiceDispatchError):
    """Control-flow signals of the dispatch loop. Never converted into tool results."""


class DispatchCancelled(DispatchControl):
    pass
