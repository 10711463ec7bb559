"""
Google Gemini integration
"""

from .client import FileState, GeminiClient, ProviderFile, get_gemini_client

__all__ = ["FileState", "GeminiClient", "ProviderFile", "get_gemini_client"]
