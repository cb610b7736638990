"""Optimizer request/response adapter and clients.

Builds the outbound request payload from the canonical model, validates the
optimizer reply, and talks to an OpenAI-compatible endpoint (or a mock
response file).
"""
