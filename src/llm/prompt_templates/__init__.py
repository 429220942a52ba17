"""Instruction-template provider: secret system prompts keyed by request type."""

from src.llm.prompt_templates.library import InstructionLibrary

__all__ = ["InstructionLibrary"]
