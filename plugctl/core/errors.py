"""Domain-specific errors for plugctl."""


class PlugctlError(Exception):
    """Base error for plugctl."""


class ConfigValidationError(PlugctlError):
    """Raised when a config file does not conform to schema or semantics."""


class ConfigLoadError(PlugctlError):
    """Raised when reading a config file fails."""


class SessionError(PlugctlError):
    """Base error for session lifecycle failures."""


class AlreadyConnectedError(SessionError):
    """Raised when connect is attempted on a session that is not disconnected."""


class ConnectionFailedError(SessionError):
    """Raised when the transport cannot be opened."""


class HandshakeError(SessionError):
    """Raised when the server info exchange does not succeed."""


class DuplicateRequestIdError(PlugctlError):
    """Raised when a request id is registered twice on one connection."""


class ProtocolDecodeError(PlugctlError):
    """Raised when an inbound payload cannot be decoded into messages."""


class DeviceSelectionError(PlugctlError):
    """Raised when a device hint cannot resolve a single registered device."""


class BridgeError(PlugctlError):
    """Raised on Bluetooth device bridge failures."""


class TransportError(PlugctlError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on transport open failures."""


class TransportSendError(TransportError):
    """Raised when payload sending fails."""


class TransportReceiveError(TransportError):
    """Raised when receiving from the transport fails."""


class TransportTimeoutError(TransportError):
    """Raised when a transport operation times out."""
