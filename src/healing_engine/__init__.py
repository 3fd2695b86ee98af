"""Selector self-healing engine.

Finds, validates and persists replacement element locators when a previously
working selector stops resolving on the page.
"""

__version__ = "0.1.0"
