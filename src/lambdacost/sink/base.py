from typing import Protocol

from lambdacost.models import AccountReport, ResourceReport


class ReportSink(Protocol):
    """
    ReportSink stands as the common protocol for every report
    destination. The caller picks the sinks; the pipeline only
    hands over complete reports.
    """

    @property
    def name(self) -> "str": ...

    async def write(self, report: "ResourceReport") -> "None": ...

    async def write_account(self, report: "AccountReport") -> "None": ...
