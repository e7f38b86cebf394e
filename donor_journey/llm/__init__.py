"""LLM client, prompts and response parsing."""
