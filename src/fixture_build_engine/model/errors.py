from __future__ import annotations

from typing import Any, Sequence


class BuildEngineError(Exception):
    """
    Base error type for every failure raised by the build engine.
    """


class ArgumentRequiredError(BuildEngineError, ValueError):
    """
    Raised when a required input (target type, configuration, instance) is missing.
    """

    def __init__(self, argument: str) -> None:
        super().__init__(f"{argument} is required")
        self.argument = argument


class GenerationNotSupportedError(BuildEngineError):
    """
    Raised when a generator, creator or rule is asked to act on a (type, name) pair it does
    not support.
    """


class RuleConfigurationError(BuildEngineError, ValueError):
    """
    Raised when a rule is malformed at the time it is created.
    """


class StrategyConfigError(BuildEngineError, RuntimeError):
    """
    Raised when strategy discovery, binding or compilation receives invalid configuration.
    """


class BuildStateError(BuildEngineError, RuntimeError):
    """
    Raised when the build history is used out of order (for example popping an empty history).
    """


class BuildError(BuildEngineError):
    """
    Raised when the engine cannot build a value for the requested type.

    Attributes:
        target_type: the type that was being built.
        reference_name: the property or parameter name the value was intended for, if any.
        context: the instance under construction when the failure happened, if any.
        build_log: the build log text recorded up to the failure.
        causes: exceptions collected from the strategies that were attempted.
    """

    def __init__(
        self,
        message: str,
        *,
        target_type: Any = None,
        reference_name: str | None = None,
        context: Any = None,
        build_log: str = "",
        causes: Sequence[BaseException] = (),
    ):
        super().__init__(message)
        self.target_type = target_type
        self.reference_name = reference_name
        self.context = context
        self.build_log = build_log
        self.causes = tuple(causes)


class MissingConstructorError(BuildError):
    """
    Raised when the supplied arguments cannot satisfy any constructor signature.
    """
