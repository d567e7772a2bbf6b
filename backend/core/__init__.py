"""Core shared logic for signal decisions, indicators, and models.

This package contains pure business logic with no I/O dependencies
(no network or file access). It is shared between the live service
(app/) and the replay tooling (backtest/).
"""
