"""External language-model calls and the guard around them."""

from guidance_agent.llm.guarded import GuardedResult, guarded_call

__all__ = ["GuardedResult", "guarded_call"]
