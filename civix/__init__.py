"""Civix civic-engagement portal: complaints, petitions and polls."""

__version__ = "0.4.0"
