"""
globallib: find a book, then find a shelf that holds it.

Searches Open Library for candidate books, asks a web-grounded Gemini model
for nearby physical holdings, and renders an AI shelf guide on request.
"""

__version__ = "0.1.0"
