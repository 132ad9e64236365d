"""AI backend selection and clients (Ollama, Gemini)."""

from .base import AIClient
from .factory import create_ai_client
from .parsing import extract_json_array, parse_json_array

__all__ = ["AIClient", "create_ai_client", "extract_json_array", "parse_json_array"]
