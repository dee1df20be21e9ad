"""Configuration settings for the chorus chat orchestrator."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Logging setup
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)

# Google Gemini (default backend)
# Available models:
# - gemini-2.5-pro (main pipeline)
# - gemini-2.5-flash (critique, search gate, memory, suggestions)
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
GEMINI_DEFAULT_MODEL = os.getenv("GEMINI_DEFAULT_MODEL", "gemini-2.5-pro")
GEMINI_AUXILIARY_MODEL = os.getenv("GEMINI_AUXILIARY_MODEL", "gemini-2.5-flash")

# OpenRouter
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
OPENROUTER_DEFAULT_MODEL = os.getenv("OPENROUTER_DEFAULT_MODEL", "google/gemini-2.5-pro")

# Anthropic (direct API)
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
ANTHROPIC_DEFAULT_MODEL = os.getenv("ANTHROPIC_DEFAULT_MODEL", "claude-sonnet-4-20250514")

# Transport timeout for every model call (seconds)
GATEWAY_TIMEOUT = float(os.getenv("GATEWAY_TIMEOUT", "120.0"))

# Local data (conversations, memories, drafts)
CHORUS_HOME = Path(os.getenv("CHORUS_HOME", str(Path.home() / ".chorus")))
