"""Domain layer — layers, change sets, work items, and guardrails.

This layer depends only on stdlib, pydantic, and networkx.
It must never import from services, infrastructure, commands, or config.
"""
