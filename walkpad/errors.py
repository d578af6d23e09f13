"""Error taxonomy shared by the backend and the capture client."""


class WalkpadError(Exception):
    """Base class for all walkpad errors."""


class DeviceError(WalkpadError):
    """Camera unavailable, denied, or not producing frames."""


class TransportError(WalkpadError):
    """Upload or analyze call failed (network or server)."""


class ParseError(WalkpadError):
    """Model response was not a JSON object."""


class PersistenceError(WalkpadError):
    """Local history storage is unavailable or full."""


class VisionError(WalkpadError):
    """The vision model failed or returned nothing."""
