from __future__ import annotations


class MfsBenchError(Exception):
    """Base class for errors raised by mfsbench."""


class RpcError(MfsBenchError):
    """The daemon rejected an RPC call."""

    def __init__(self, command: str, message: str, status_code: int | None = None):
        super().__init__(f"{command}: {message}")
        self.command = command
        self.message = message
        self.status_code = status_code


class NotFoundError(RpcError):
    """The MFS path named in the call does not exist."""


class MissingRootError(NotFoundError):
    """The benchmark root has not been provisioned yet."""


class DaemonUnavailableError(RpcError):
    """The daemon could not be reached at all."""


class CliIngestError(MfsBenchError):
    """The `ipfs add` subprocess failed or printed no usable CID."""
