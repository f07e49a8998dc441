from .callable_task_unit import CallableTaskUnit
from .http_task_unit import HttpTaskUnit
from .lambda_task_unit import LambdaTaskUnit
from .outcome_sinks import KinesisOutcomeSink, StructlogOutcomeSink
from .task_registry import TaskRegistry, create_task_unit

__all__ = [
    "CallableTaskUnit",
    "HttpTaskUnit",
    "KinesisOutcomeSink",
    "LambdaTaskUnit",
    "StructlogOutcomeSink",
    "TaskRegistry",
    "create_task_unit",
]
