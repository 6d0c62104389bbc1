"""Error taxonomy for the platform core.

Every error carries a machine-readable ``code`` and a ``message`` that is
safe to show to the caller. Anything more detailed (SQL text, driver
errors) belongs in the logs, never in the message.
"""


class PlatformCoreError(Exception):
    """Base class for all platform core errors."""

    code = "PLATFORM_ERROR"
    default_message = "An error occurred"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class SecurityError(PlatformCoreError):
    """Missing or invalid anti-forgery token. Fatal for the request."""

    code = "SECURITY_CHECK_FAILED"
    default_message = "Security check failed"


class UnknownEntityError(PlatformCoreError):
    """The requested entity is not registered (a configuration error)."""

    code = "UNKNOWN_ENTITY"
    default_message = "Unknown entity"


class PermissionDeniedError(PlatformCoreError):
    """The caller lacks the coarse capability for the operation."""

    code = "PERMISSION_DENIED"
    default_message = "Access denied"


class DataAccessError(PlatformCoreError):
    """Timeout, connection failure or malformed query at the store."""

    code = "DATA_ACCESS_ERROR"
    default_message = "An error occurred while loading data"


class ValidationError(PlatformCoreError):
    """Malformed pagination or sort parameters (strict parsing only)."""

    code = "INVALID_REQUEST"
    default_message = "Invalid request parameters"


class DescriptorError(PlatformCoreError):
    """An entity descriptor is malformed."""

    code = "INVALID_DESCRIPTOR"
    default_message = "Invalid entity descriptor"


class DuplicateEntityError(DescriptorError):
    """An entity name was registered twice with conflicting configuration."""

    code = "DUPLICATE_ENTITY"
    default_message = "Entity is already registered"


class ExtensionError(PlatformCoreError):
    """A registered mutator misbehaved (wrong return type or raised)."""

    code = "EXTENSION_ERROR"
    default_message = "An error occurred while loading data"


class QueryBuildError(PlatformCoreError):
    """Query fragments could not be assembled (e.g. bind name collision)."""

    code = "QUERY_BUILD_ERROR"
    default_message = "An error occurred while loading data"
