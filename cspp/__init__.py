"""CSPP: credential-gated image posting to Slack."""

__version__ = "0.1.0"
