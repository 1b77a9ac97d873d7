"""
Task Orchestrator Test Suite
============================

Run all tests:
    pytest tests/ -v

Run with coverage:
    pytest tests/ --cov=task_orchestrator --cov-report=html

These tests use fake providers/tools and mocked HTTP transports;
they never need real API keys or network access.
"""
