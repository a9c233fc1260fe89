"""
LLM request/response pipeline: chat-completions client, prompt assembly and
reply parsing.
"""

from .openai_client import OpenAIClient
from .prompts import StoryPrompts
from .context_builder import build_context, build_scene_context
from .response_parser import parse_timeline, extract_summary

__all__ = ['OpenAIClient', 'StoryPrompts', 'build_context', 'build_scene_context',
           'parse_timeline', 'extract_summary']
