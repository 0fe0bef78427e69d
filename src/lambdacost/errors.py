class ReportError(Exception):
    """
    ReportError is the base for every failure that
    aborts a report run.
    """


class InvalidDateFormat(ReportError):
    def __init__(self, value: "str") -> "None":
        super().__init__(f"Invalid date '{value}', expected YYYY-MM")
        self.value = value


class ConfigNotFound(ReportError):
    def __init__(self, resource_name: "str") -> "None":
        super().__init__("No matching configuration found")
        self.resource_name = resource_name


class UpstreamQueryFailure(ReportError):
    """
    raised when a telemetry, billing or sink call fails
    with anything other than an empty result.
    """

    def __init__(self, source: "str", message: "str") -> "None":
        super().__init__(f"{source}: {message}")
        self.source = source
