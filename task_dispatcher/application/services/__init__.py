from .dispatcher import Dispatcher
from .schedule_compiler import compile_schedule, parse_recurrence, to_expression
from .task_invoker import RetryPolicy, TaskInvoker

__all__ = [
    "Dispatcher",
    "RetryPolicy",
    "TaskInvoker",
    "compile_schedule",
    "parse_recurrence",
    "to_expression",
]
