"""
Semantic Mediator HTTP API
"""
