"""Error taxonomy surfaced by the bridge, the pool and the facade."""

from typing import Optional


class BridgeError(Exception):
    """Base class for every error the bridge hands back to a caller.

    :ivar reason: Human readable reason, passed through verbatim.
    :type reason: str
    """

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def __eq__(self, other):
        return type(self) is type(other) and self.reason == other.reason

    def __hash__(self):
        return hash((type(self), self.reason))


class SerializationError(BridgeError):
    """Arguments or a reply could not be encoded/decoded as JSON."""


class WorkerUnavailable(BridgeError):
    """No worker could be acquired or the call deadline passed."""


class RemoteExecutionError(BridgeError):
    """The external library raised or returned an error.

    :ivar remote_type: Exception class name reported by the worker, if any.
    """

    def __init__(self, reason: str, remote_type: Optional[str] = None):
        super().__init__(reason)
        self.remote_type = remote_type


class SchemaMismatchError(BridgeError):
    """A reply did not fit the domain record it was mapped onto."""


class DataQualityError(BridgeError):
    """A record was built but breaks one of its invariants."""


class CredentialError(BridgeError):
    """Required credential fields are missing for an exchange."""


class PoolStartupError(BridgeError):
    """Workers could not be brought up; the pool is unusable."""


class ConfigurationError(ValueError):
    """Invalid configuration value."""


class WorkerCrashed(Exception):
    """Raised inside the pool when a worker process dies or breaks the protocol."""
