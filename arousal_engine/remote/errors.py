"""Remote reasoning failure taxonomy.

Every failure of the remote path is a RemoteError.  None of them reach the
presentation boundary: the DecisionArbiter converts each into a fallback to
the rule-based decision.
"""

from __future__ import annotations


class RemoteError(Exception):
    """Base class for remote reasoning failures."""


class RemoteUnavailable(RemoteError):
    """No credential, no profile, or provider misconfigured.  Never attempted."""


class RemoteTimeout(RemoteError):
    """The provider did not answer within the hard timeout."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Remote reasoning exceeded {timeout:.1f}s timeout")


class RemoteMalformedResponse(RemoteError):
    """The provider answered but the verdict could not be parsed."""


class RemoteTransportError(RemoteError):
    """The provider call failed in transport (network, HTTP status, SDK error)."""


class RemoteBusy(RemoteError):
    """Another call for this session is still in flight.  Never attempted."""
