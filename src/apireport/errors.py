class ReportError(Exception):
    """Base class for errors that abort report generation."""


class InternalError(ReportError):
    """
    An upstream invariant was violated, e.g. a tracked entity without an emit
    name. Indicates a bug in a collaborator rather than bad user input.
    """

    def __init__(self, message: str) -> None:
        super().__init__(
            f"Internal Error: {message}\n\n"
            "You have encountered a software defect. Please consider reporting the issue."
        )
        self.unformatted_message = message


class UnsupportedStarExportError(ReportError):
    """A namespace import whose module star-exports an external module."""

    def __init__(self, namespace_name: str, location: str) -> None:
        super().__init__(
            f"The {namespace_name} namespace import includes a star export, which is not supported:\n"
            f"{location}"
        )
        self.namespace_name = namespace_name
        self.location = location
