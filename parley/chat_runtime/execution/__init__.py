"""Execution pipeline for the chat runtime.

- **prompt**: System prompt rendering (Jinja2 templates)
- **coordinator**: Request orchestration (begin -> execute -> settle)
"""
