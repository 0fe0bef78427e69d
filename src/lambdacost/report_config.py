import json
from dataclasses import dataclass
from pathlib import Path

from lambdacost.errors import ConfigNotFound, ReportError


@dataclass(frozen=True, slots=True)
class TagKeyValues:
    key: "str"
    values: "tuple[str, ...]"


@dataclass(frozen=True, slots=True)
class ReportConfig:
    """
    ReportConfig resolves a logical resource name to
    where and how its usage and cost are queried.
    """

    region: "str"
    report_query_role_arn: "str"
    resource_name: "str"
    cost_allocation_tags: "tuple[TagKeyValues, ...]" = ()


class ReportConfigStore:
    """
    ReportConfigStore holds the report configuration records
    loaded once per run. It is read-only after construction.
    """

    def __init__(self, configs: "list[ReportConfig]") -> "None":
        self._configs: "tuple[ReportConfig, ...]" = tuple(configs)

    @classmethod
    def from_file(cls, path: "str | Path") -> "ReportConfigStore":
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
        except OSError as exc:
            raise ReportError(f"Cannot read report config {path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ReportError(f"Report config {path} is not valid JSON: {exc}") from exc
        return cls.from_records(raw)

    @classmethod
    def from_records(cls, raw: "object") -> "ReportConfigStore":
        if not isinstance(raw, list):
            raise ReportError("Report config must be a list of records")

        configs: "list[ReportConfig]" = []
        for entry in raw:
            try:
                tags = tuple(
                    TagKeyValues(key=str(tag["key"]), values=tuple(tag["values"]))
                    for tag in entry.get("cost_allocation_tags", [])
                )
                configs.append(
                    ReportConfig(
                        region=entry["region"],
                        report_query_role_arn=entry.get("report_query_role_arn")
                        or entry.get("cross_account_role_arn", ""),
                        resource_name=entry["resource_name"],
                        cost_allocation_tags=tags,
                    )
                )
            except (AttributeError, KeyError, TypeError) as exc:
                raise ReportError(f"Malformed report config entry: {entry!r}") from exc
        return cls(configs)

    def __iter__(self):
        return iter(self._configs)

    def __len__(self) -> "int":
        return len(self._configs)

    def find(self, resource_name: "str") -> "ReportConfig":
        """
        returns the record whose resource_name matches exactly.
        """
        for config in self._configs:
            if config.resource_name == resource_name:
                return config
        raise ConfigNotFound(resource_name)
