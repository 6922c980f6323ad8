"""
Token pricing per AI flow.

Maps each feature that can trigger an AI invocation to the number of
tokens it costs.
"""

from dataclasses import dataclass
from typing import Dict

GEMINI_CHAT = "gemini_chat"
GEMINI_PROMPT = "gemini_prompt"


@dataclass(frozen=True)
class FlowPricingTable:
    """Fixed token cost for each supported flow."""
    costs: Dict[str, int]

    def __post_init__(self):
        """Validate that every flow costs at least one token."""
        for flow_name, cost in self.costs.items():
            if not isinstance(cost, int) or isinstance(cost, bool) or cost <= 0:
                raise ValueError(f"token cost for flow '{flow_name}' must be a positive integer")

    def cost_for(self, flow_name: str) -> int:
        """Get the token cost of a flow.

        Args:
            flow_name: Flow identifier

        Returns:
            Number of tokens one invocation of the flow deducts

        Raises:
            ValueError: If flow is not supported
        """
        if flow_name not in self.costs:
            raise ValueError(f"Unsupported flow: {flow_name}")
        return self.costs[flow_name]


# Built-in flow prices; config files may replace the table
DEFAULT_PRICING = FlowPricingTable({
    GEMINI_CHAT: 1,
    GEMINI_PROMPT: 1,
    "cover_letter_generation": 1,
    "cv_match_calculation": 1,
    "job_suggestions": 1,
    "interview_questions": 2,
})
