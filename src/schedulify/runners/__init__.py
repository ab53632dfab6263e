from .base import BaseRunner, RunnerConfig
from .interval import IntervalTaskRunner
from .one_time import OneTimeTaskRunner
from .cron import CronTaskRunner

__all__ = ["BaseRunner", "RunnerConfig", "IntervalTaskRunner", "OneTimeTaskRunner", "CronTaskRunner"]
