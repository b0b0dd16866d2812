"""AI Module for Groq LLM Integration.

OPTIONAL tool-calling agent. It shares the tool layer and the payment-link
flow with the rule-based orchestrator and falls back to it whenever Groq is
unavailable.
"""

from .agent import LlmWalletAgent
from .groq_client import GroqClient, get_groq_client

__all__ = ["LlmWalletAgent", "GroqClient", "get_groq_client"]
