"""Service layer: credentials, messaging and HTTP client."""

from cspp.services.api_key import CredentialStore
from cspp.services.dispatcher import UNKNOWN_AUTHOR, Dispatcher
from cspp.services.slack import SlackDispatcher

__all__ = ["CredentialStore", "Dispatcher", "SlackDispatcher", "UNKNOWN_AUTHOR"]
