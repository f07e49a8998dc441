"""
Registry of task units keyed by task reference.

Targets are configured as strings and resolved to adapters:
``lambda:<function name or ARN>`` or an ``http(s)://`` URL.
"""

from ...domain.errors import UnknownTaskError
from ...domain.ports import TaskUnit
from .http_task_unit import HttpTaskUnit
from .lambda_task_unit import LambdaTaskUnit


class TaskRegistry:
    """Maps task references to TaskUnit implementations."""

    def __init__(self, units: dict[str, TaskUnit] | None = None) -> None:
        self._units: dict[str, TaskUnit] = dict(units or {})

    def register(self, task_ref: str, unit: TaskUnit) -> None:
        self._units[task_ref] = unit

    def get(self, task_ref: str) -> TaskUnit:
        """
        Get the task unit for a task reference.

        Raises:
            UnknownTaskError: If nothing is registered under ``task_ref``
        """
        try:
            return self._units[task_ref]
        except KeyError:
            raise UnknownTaskError(task_ref) from None

    def __contains__(self, task_ref: str) -> bool:
        return task_ref in self._units

    @classmethod
    def from_targets(
        cls,
        targets: dict[str, str],
        region: str = "us-east-1",
        endpoint_url: str | None = None,
    ) -> "TaskRegistry":
        return cls(
            {
                task_ref: create_task_unit(target, region=region, endpoint_url=endpoint_url)
                for task_ref, target in targets.items()
            }
        )


def create_task_unit(
    target: str,
    region: str = "us-east-1",
    endpoint_url: str | None = None,
) -> TaskUnit:
    """Create the adapter for a target string."""
    scheme, _, rest = target.partition(":")
    match scheme.lower():
        case "lambda":
            if not rest:
                raise ValueError(f"Missing function name in target: {target!r}")
            return LambdaTaskUnit(function_name=rest, region=region, endpoint_url=endpoint_url)
        case "http" | "https":
            return HttpTaskUnit(url=target)
        case _:
            raise ValueError(f"Unsupported task target: {target!r}")
