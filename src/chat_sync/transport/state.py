"""
Connection state machine.

Pure transition functions over ConnectionStatus, kept apart from the socket so
the retry policy can be exercised without a network.

    disconnected --begin_connect--> connecting --connected--> connected
    connecting / retrying(n) --failed--> retrying(n+1) | disconnected (exhausted)
    connected --failed (unexpected drop)--> retrying(1)
    any --closed--> disconnected (counter reset)
"""

from dataclasses import dataclass, replace
from enum import Enum

from chat_sync.config import ConnectionPolicy


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RETRYING = "retrying"


@dataclass(frozen=True)
class ConnectionStatus:
    state: ConnectionState = ConnectionState.DISCONNECTED
    attempt: int = 0

    @property
    def public(self) -> ConnectionState:
        """Three-valued view for status display: retrying reports as connecting."""
        if self.state is ConnectionState.RETRYING:
            return ConnectionState.CONNECTING
        return self.state

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def __str__(self) -> str:
        if self.state is ConnectionState.RETRYING:
            return f"retrying({self.attempt})"
        return self.state.value


def begin_connect(status: ConnectionStatus) -> ConnectionStatus:
    if status.state is not ConnectionState.DISCONNECTED:
        return status
    return ConnectionStatus(ConnectionState.CONNECTING, 0)


def connected(_status: ConnectionStatus) -> ConnectionStatus:
    return ConnectionStatus(ConnectionState.CONNECTED, 0)


def failed(status: ConnectionStatus, policy: ConnectionPolicy) -> ConnectionStatus:
    """A connect attempt failed or an established connection dropped."""
    if status.state is ConnectionState.DISCONNECTED:
        return status
    attempt = status.attempt + 1
    if attempt > policy.max_attempts:
        return replace(status, state=ConnectionState.DISCONNECTED)
    return ConnectionStatus(ConnectionState.RETRYING, attempt)


def closed(_status: ConnectionStatus) -> ConnectionStatus:
    return ConnectionStatus(ConnectionState.DISCONNECTED, 0)
