"""
LLM-facing pieces: the LiteLLM client, prompt templates, task classification
and reply parsing.
"""

from .response_parser import ParsedReply, parse_reply, resolve_value
from .task_classifier import TaskClassification, classify_task, detect_data_type

__all__ = [
    "ParsedReply",
    "TaskClassification",
    "classify_task",
    "detect_data_type",
    "parse_reply",
    "resolve_value",
]
