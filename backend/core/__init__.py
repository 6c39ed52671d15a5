"""Core logic for indicators, signal derivation, rate limiting and models.

This package contains pure business logic with no I/O dependencies
(no Redis or network access). The service layer in app/ owns all I/O and
injects clocks and collaborators into these components.
"""
