# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""External collaborators: embedding and generative providers."""

from .embedder import EmbeddingProvider, LocalEmbedder, OpenAIEmbedder
from .generator import OpenAIChatGenerator, ResponseGenerator, build_prompt

__all__ = [
    "EmbeddingProvider",
    "LocalEmbedder",
    "OpenAIEmbedder",
    "ResponseGenerator",
    "OpenAIChatGenerator",
    "build_prompt",
]
