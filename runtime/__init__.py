"""Invoker runtime facade."""

from runtime.invoker_runtime import InvokerRuntime

__all__ = ["InvokerRuntime"]
