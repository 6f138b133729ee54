"""Prompt construction for the AI provider chain."""
from guardql.prompt.builder import PromptBuilder, PromptComponents

__all__ = ["PromptBuilder", "PromptComponents"]
