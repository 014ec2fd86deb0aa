"""Custom exception hierarchy for the attacher."""

from typing import Any


class AttacherError(Exception):
    """Base exception for all attacher errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ProcessNotFoundError(AttacherError):
    """No discovered debugpy process listens on the given port."""

    def __init__(self, port: str):
        super().__init__(
            code="PROCESS_NOT_FOUND",
            message=f"No debugpy process found on port {port}",
            details={"port": port},
        )


class OtherUserProcessError(AttacherError):
    """Attach to another user's process was not confirmed."""

    def __init__(self, port: str, owner: str):
        super().__init__(
            code="OTHER_USER_PROCESS",
            message=(
                f"Port {port} belongs to a process owned by another user ({owner}); "
                "confirm to attach anyway"
            ),
            details={"port": port, "owner": owner},
        )


class PortLockedError(AttacherError):
    """Another instance already holds the lock for the port."""

    def __init__(self, port: str):
        super().__init__(
            code="PORT_LOCKED",
            message=f"Port {port} is already being debugged by another window",
            details={"port": port},
        )


class AttachError(AttacherError):
    """Debugger failed to attach."""

    def __init__(self, port: str, reason: str, code: str = "ATTACH_FAILED"):
        super().__init__(
            code=code,
            message=f"Error attaching debugger to port {port}: {reason}",
            details={"port": port, "reason": reason},
        )


class AttachConnectionRefusedError(AttachError):
    """Debug agent refused the connection (usually not ready yet)."""

    def __init__(self, port: str, reason: str = "connection refused"):
        super().__init__(port, reason, code="CONNECTION_REFUSED")


class AttachTimeoutError(AttachError):
    """Connecting to the debug agent timed out."""

    def __init__(self, port: str, timeout: float):
        super().__init__(port, f"timed out after {timeout}s", code="ATTACH_TIMEOUT")
        self.details["timeout"] = timeout


class DAPError(AttacherError):
    """DAP protocol errors."""

    pass


class DAPTimeoutError(DAPError):
    """DAP request timed out."""

    def __init__(self, command: str, timeout: float):
        super().__init__(
            code="DAP_TIMEOUT",
            message=f"DAP command '{command}' timed out after {timeout}s",
            details={"command": command, "timeout": timeout},
        )


class LaunchConfigError(AttacherError):
    """launch.json could not be read or written."""

    pass


class PersistenceError(AttacherError):
    """Persistence layer errors."""

    pass
