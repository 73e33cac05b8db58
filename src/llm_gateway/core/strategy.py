"""
Provider selection strategies.

Task-type routing is a plain lookup table so it can be inspected and
overridden without touching the gateway's orchestration code.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.catalog import Provider
from ..models.request import TaskType


class SelectionCriteria(BaseModel):
    """Optional filters applied to each candidate during selection."""
    max_cost: Optional[float] = Field(default=None, ge=0, description="Cost ceiling in USD for the request")
    max_latency_ms: Optional[float] = Field(default=None, gt=0, description="Ceiling for the availability probe duration")
    required_capabilities: List[str] = Field(default_factory=list)


class SelectionStrategy(BaseModel):
    """Primary provider plus ordered fallbacks."""
    primary: str
    fallbacks: List[str] = Field(default_factory=list)
    criteria: Optional[SelectionCriteria] = None

    def candidates(self) -> List[str]:
        """Providers to try, in order, without duplicates."""
        seen = []
        for provider in [self.primary, *self.fallbacks]:
            if provider not in seen:
                seen.append(provider)
        return seen

    @classmethod
    def parse(cls, primary: str, fallbacks: Optional[str] = None) -> "SelectionStrategy":
        """Build from ``LLM_PROVIDER`` / ``LLM_FALLBACK_PROVIDERS`` style values."""
        names = [f.strip() for f in (fallbacks or "").split(",") if f.strip()]
        return cls(primary=primary.strip(), fallbacks=names)


# Cost-optimized default: free/self-hosted first, then paid cloud providers.
DEFAULT_STRATEGY = SelectionStrategy(
    primary=Provider.LOCAL.value,
    fallbacks=[Provider.GEMINI.value, Provider.OPENAI.value],
)

DEFAULT_TASK_STRATEGIES: Dict[TaskType, SelectionStrategy] = {
    TaskType.VISION: SelectionStrategy(
        primary=Provider.GEMINI.value,
        fallbacks=[Provider.OPENAI.value, Provider.ANTHROPIC.value],
        criteria=SelectionCriteria(required_capabilities=["vision"]),
    ),
    # Ordered by published price, cheapest first.
    TaskType.EMBEDDING: SelectionStrategy(
        primary=Provider.LOCAL.value,
        fallbacks=[Provider.HUGGINGFACE.value, Provider.GEMINI.value, Provider.OPENAI.value],
    ),
    TaskType.CHAT: DEFAULT_STRATEGY,
    TaskType.ANALYSIS: DEFAULT_STRATEGY,
    TaskType.CODE: DEFAULT_STRATEGY,
}


class StrategyTable:
    """
    Maps task types to selection strategies.

    A configured default strategy replaces the cost-optimized entry for
    every task type that does not have a specialised route (chat,
    analysis, code and untyped calls).
    """

    SPECIALISED = (TaskType.VISION, TaskType.EMBEDDING)

    def __init__(
        self,
        routes: Optional[Dict[TaskType, SelectionStrategy]] = None,
        default: Optional[SelectionStrategy] = None,
    ):
        self._routes = dict(routes if routes is not None else DEFAULT_TASK_STRATEGIES)
        self._default = default or DEFAULT_STRATEGY

        if default is not None:
            for task_type in TaskType:
                if task_type not in self.SPECIALISED:
                    self._routes[task_type] = default

    @property
    def default(self) -> SelectionStrategy:
        return self._default

    def resolve(self, task_type: Optional[TaskType] = None) -> SelectionStrategy:
        if task_type is None:
            return self._default
        return self._routes.get(task_type, self._default)

    def set_route(self, task_type: TaskType, strategy: SelectionStrategy) -> None:
        self._routes[task_type] = strategy
