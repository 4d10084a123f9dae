"""Slack coffee/tea tally bot backed by a Google Sheets ledger."""

__version__ = "0.1.0"
