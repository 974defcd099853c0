"""Solve Google Classroom assignments with Gemini and hand the results back to Drive."""

__version__ = '0.1.0'
