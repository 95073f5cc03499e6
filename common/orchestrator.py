# common/orchestrator.py
# -*- coding: utf-8 -*-
"""
Centralized orchestrator for running an ordered sequence of stages.
"""

import logging
import sys
from typing import Any, Callable, Dict, List, Optional

from common.command_utils import log_map_server


class Orchestrator:
    """Runs stages strictly in order; a failing fatal stage ends the process."""

    def __init__(
        self,
        app_settings: Any,
        orchestrator_logger: Optional[logging.Logger] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """
        Initializes the Orchestrator.

        Args:
            app_settings: The application settings object.
            orchestrator_logger: An optional logger instance.
            context: Initial shared context handed to every task.
        """
        self.app_settings = app_settings
        self.logger = orchestrator_logger or logging.getLogger(__name__)
        self.tasks: List[Dict[str, Any]] = []
        # Shared context for tasks to pass state between each other
        self.context: Dict[str, Any] = context if context is not None else {}
        self.completed: List[str] = []

    def add_task(
        self,
        name: str,
        func: Callable,
        args: Optional[List[Any]] = None,
        kwargs: Optional[Dict[str, Any]] = None,
        fatal: bool = True,
    ):
        """
        Adds a task to the execution list.

        Args:
            name: A human-readable name for the task.
            func: The function to execute for this task.
            args: A list of positional arguments to pass to the function.
            kwargs: A dictionary of keyword arguments to pass to the function.
            fatal: If True, a failure in this task will halt the entire orchestration.
        """
        self.tasks.append({
            "name": name,
            "func": func,
            "args": args or [],
            "kwargs": kwargs or {},
            "fatal": fatal,
        })
        self.logger.debug(f"Task '{name}' added to the queue.")

    def _symbol(self, key: str, fallback: str) -> str:
        symbols = getattr(self.app_settings, "symbols", None)
        if isinstance(symbols, dict):
            return symbols.get(key, fallback)
        return fallback

    def _report_failure(self, task_name: str, error: Exception, fatal: bool) -> None:
        log_map_server(
            f"{self._symbol('critical', '🔥')} Stage '{task_name}' failed: {error}",
            "critical",
            self.logger,
            exc_info=True,
        )
        if not fatal:
            log_map_server(
                f"{self._symbol('warning', '!')} Stage '{task_name}' is non-fatal. Continuing.",
                "warning",
                self.logger,
            )
            return
        log_map_server(
            f"{self._symbol('error', '❌')} A fatal error occurred. Halting and exiting.",
            "error",
            self.logger,
        )
        sys.exit(1)

    def run(self) -> bool:
        """
        Executes all added tasks in sequence.

        Returns:
            True once every task has run. A fatal failure never returns: it
            exits the process with status 1.
        """
        log_map_server("Orchestration started.", "info", self.logger)
        total = len(self.tasks)
        for i, task in enumerate(self.tasks):
            task_name = task["name"]
            log_map_server(
                f"--- {self._symbol('step', '➡️')} Stage {i + 1}/{total}: {task_name} ---",
                "step",
                self.logger,
            )

            try:
                # Pass the shared context to every function
                task["kwargs"]["context"] = self.context
                task["kwargs"]["app_settings"] = self.app_settings

                result = task["func"](*task["args"], **task["kwargs"])

                self.context[f"{task_name}_result"] = result
                self.completed.append(task_name)

                log_map_server(
                    f"{self._symbol('success', '✅')} Stage '{task_name}' completed.",
                    "success",
                    self.logger,
                )

            except Exception as e:
                self._report_failure(task_name, e, task.get("fatal", True))

        log_map_server(
            f"{self._symbol('sparkles', '✨')} Orchestration finished successfully.",
            "success",
            self.logger,
        )
        return True
