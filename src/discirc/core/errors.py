"""Bridge domain exceptions."""

from __future__ import annotations


class BridgeError(Exception):
    """Base for bridge domain errors."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, object] | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.original_error = original_error


class BridgeConfigurationError(BridgeError):
    """Config validation or load failure."""


class AdapterTerminatedError(BridgeError):
    """An adapter's connection exited and will not come back."""

    def __init__(
        self,
        side: str,
        message: str,
        *,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(
            message,
            code="adapter_terminated",
            details={"side": side},
            original_error=original_error,
        )
        self.side = side


class PipeClosedError(BridgeError):
    """The far end of a pipe hung up."""

    def __init__(self, name: str) -> None:
        super().__init__(f"{name} hung up", code="pipe_closed", details={"pipe": name})
        self.name = name
