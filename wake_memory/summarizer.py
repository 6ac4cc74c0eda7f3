"""
Summarizer interface for Wake Memory
Copyright 2025 Jurden Bruce
"""

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger("wake-memory.summarizer")

FALLBACK_SUMMARY_CHARS = 200
FALLBACK_TAGS = "auto-generated"


class Summarizer(ABC):
    """Turns raw content into a summary and a comma-separated tag string"""

    @abstractmethod
    async def generate_summary(self, content: str) -> str:
        ...

    @abstractmethod
    async def generate_tags(self, summary: str) -> str:
        ...


class TruncatingSummarizer(Summarizer):
    """Fallback used when no model-backed summarizer is configured"""

    def __init__(self, max_chars: int = FALLBACK_SUMMARY_CHARS):
        self.max_chars = max_chars

    async def generate_summary(self, content: str) -> str:
        content = content.strip()
        if len(content) <= self.max_chars:
            return content
        return content[:self.max_chars] + "..."

    async def generate_tags(self, summary: str) -> str:
        return FALLBACK_TAGS
