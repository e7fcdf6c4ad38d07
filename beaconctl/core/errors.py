"""Domain-specific errors for beaconctl."""


class BeaconctlError(Exception):
    """Base error for beaconctl."""


class RegistryValidationError(BeaconctlError):
    """Raised when a beacon table does not conform to schema or semantics."""


class RegistryLoadError(BeaconctlError):
    """Raised when reading beacon table sources fails."""


class FrameDecodeError(BeaconctlError):
    """Raised when user-supplied payload text is not valid hex."""


class ScannerError(BeaconctlError):
    """Base scanner error."""


class ScannerUnavailableError(ScannerError):
    """Raised when the BLE stack or adapter cannot be used for scanning."""


class EngineConfigError(BeaconctlError):
    """Raised when detection engine tunables are out of range."""
