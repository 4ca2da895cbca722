# repomirror/__init__.py
"""Local mirror of GitHub trees plus a broker for the tokens needed to fetch them."""

__version__ = "0.1.0"
