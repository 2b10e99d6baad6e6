"""
Folio - Configuration
Paths, LLM settings, and analysis tunables
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# =============================================================================
# PATHS
# =============================================================================
PROJECT_ROOT = Path(__file__).parent
DATA_DIR = PROJECT_ROOT / "data"
LOGS_DIR = PROJECT_ROOT / "logs"
NOTES_DIR = Path(os.getenv("NOTES_DIR", str(DATA_DIR / "notes")))
DIAGNOSTIC_LOG_PATH = LOGS_DIR / "diagnostic.log"
PROMPT_LOG_PATH = LOGS_DIR / "prompts.jsonl"

# =============================================================================
# VERSION
# =============================================================================
VERSION = "0.3.0"
PROJECT_NAME = "Folio"

# =============================================================================
# LOGGING
# =============================================================================
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "true").lower() == "true"

# Every completion request/response is appended to PROMPT_LOG_PATH as JSON Lines.
# Book chunks are large, so this file grows quickly on long novels.
PROMPT_LOGGING_ENABLED = os.getenv("PROMPT_LOGGING_ENABLED", "false").lower() == "true"

# =============================================================================
# LLM CONFIGURATION
# =============================================================================
# Provider:
#   "openai"    - Any OpenAI-compatible /chat/completions endpoint
#                 (OpenAI, DeepSeek, OpenRouter, local llama.cpp / vLLM servers)
#   "anthropic" - Claude via the Anthropic SDK
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai")

# OpenAI-compatible endpoint
LLM_API_BASE_URL = os.getenv("LLM_API_BASE_URL", "https://api.openai.com/v1")
LLM_API_KEY = os.getenv("LLM_API_KEY", "")
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
LLM_TIMEOUT = int(os.getenv("LLM_TIMEOUT", "300"))   # seconds; one chunk can be 50k chars

# Stream responses (server-sent events) instead of waiting for the full body.
# Some proxies close idle connections on long requests; streaming avoids that.
LLM_STREAMING = os.getenv("LLM_STREAMING", "false").lower() == "true"

# Anthropic (Claude)
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-5-20250929")
ANTHROPIC_MAX_TOKENS = int(os.getenv("ANTHROPIC_MAX_TOKENS", "8192"))

# =============================================================================
# ANALYSIS CONFIGURATION
# =============================================================================
# Analysis depth:
#   "quick"    - synopsis, characters, techniques, takeaways
#   "standard" - + emotion curve, chapter structure, foreshadowing
#   "deep"     - + per-chapter detail, writing review
DEFAULT_ANALYSIS_MODE = os.getenv("DEFAULT_ANALYSIS_MODE", "standard")
DEFAULT_NOVEL_TYPE = os.getenv("DEFAULT_NOVEL_TYPE", "custom")

# Chunking: a chunk closes when adding the next chapter would pass the
# character ceiling, or when it already holds the chapter ceiling.
CHUNK_MAX_CHARS = int(os.getenv("CHUNK_MAX_CHARS", "50000"))
CHUNK_MAX_CHAPTERS = int(os.getenv("CHUNK_MAX_CHAPTERS", "20"))

# Sampling (synopsis, foreshadowing): chapter 0, every N/SAMPLE_STRIDE_DIVISOR-th
# chapter, and the last chapter.
SAMPLE_STRIDE_DIVISOR = 10

# Key chapters (chapter detail): first/last KEY_CHAPTER_EDGE_COUNT chapters
# plus every N/KEY_CHAPTER_DIVISOR-th chapter in between.
KEY_CHAPTER_DIVISOR = 5
KEY_CHAPTER_EDGE_COUNT = 3

# Intra-stage chunk merging. Both are tunable rather than fixed rules:
#   TECHNIQUE_EXAMPLE_CAP     - examples kept per technique after merging chunks
#   CHUNK_MERGE_PREFER_LATEST - later chunk wins conflicting scalar fields
TECHNIQUE_EXAMPLE_CAP = int(os.getenv("TECHNIQUE_EXAMPLE_CAP", "5"))
CHUNK_MERGE_PREFER_LATEST = os.getenv("CHUNK_MERGE_PREFER_LATEST", "true").lower() == "true"

# Batched analysis: chapters per batch for very long books
DEFAULT_BATCH_SIZE = int(os.getenv("DEFAULT_BATCH_SIZE", "50"))

# =============================================================================
# PERSISTENCE
# =============================================================================
# Per-book files live under NOTES_DIR/<sanitized book title>/
CHECKPOINT_FILENAME = ".analysis-checkpoint.json"
METADATA_FILENAME = ".analysis-metadata.json"
METADATA_VERSION = 1
RESULTS_DIRNAME = "results"

# Markdown notes are written as each stage finishes
INCREMENTAL_NOTES_ENABLED = os.getenv("INCREMENTAL_NOTES_ENABLED", "true").lower() == "true"
