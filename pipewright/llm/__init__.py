"""LLM clients used by codegen and triage capabilities."""
