"""Integration adapters for the corporate ordering backend.

Keep these modules small and testable:
- No FastAPI request/response objects
- No replace/add, aggregation or approval rules
- HTTP IO, token handling and response validation only
"""
