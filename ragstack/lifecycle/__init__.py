"""Backing-stack lifecycle: compose process plumbing and the controller."""

from ragstack.lifecycle.compose import ComposeRunner, ProcessResult
from ragstack.lifecycle.controller import LifecycleController, parse_health

__all__ = ["ComposeRunner", "LifecycleController", "ProcessResult", "parse_health"]
