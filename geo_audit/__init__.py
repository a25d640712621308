"""
GEO Audit - brand visibility in AI answer engines and search results.

Runs one natural-language query against several generative-answer and
search providers, extracts brand signals and citations from every answer,
and scores the brand's visibility across them.
"""

__version__ = "0.1.0"
