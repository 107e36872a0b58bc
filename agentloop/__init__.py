"""
agentloop: Plan, Execute, Evaluate orchestration engine

Turns a single natural-language request into an ordered plan of steps, runs
each step against an execution backend, and decides after every attempt
whether to retry, advance, replan, or abandon the task.
"""

__version__ = "0.1.0"

from agentloop.core.exceptions import AgentLoopError

__all__ = ["AgentLoopError", "__version__"]
