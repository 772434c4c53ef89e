"""
LLM adapter boundary. The runtime itself is external (Ollama).
"""

from .adapter import ILLMAdapter, OllamaAdapter, DisabledLLMAdapter

__all__ = ['ILLMAdapter', 'OllamaAdapter', 'DisabledLLMAdapter']
