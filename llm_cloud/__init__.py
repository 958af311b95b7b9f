"""Top-level package for llm_cloud.

This package holds the vendor SDK infrastructure:
    • provider.py – OpenAI client construction and credential validation

Assistant semantics (threads, runs, replies) live in the assistant_api package.
"""
