from .schedule_dto import ScheduleDefinition

__all__ = ["ScheduleDefinition"]
