"""
Builds ssl contexts for the outbound client and the peer-cache server roles.
"""

import logging
import ssl

from hashget.exceptions import ConfigurationError
from hashget.models.config import TlsSettings

log = logging.getLogger(__name__)


def build_client_context(settings: TlsSettings) -> ssl.SSLContext | None:
    """
    Returns a client context, or None to let aiohttp use its defaults.
    """
    if not settings.is_set():
        return None
    try:
        context = ssl.create_default_context(cafile=settings.ca_file or None)
        if settings.cert_file:
            context.load_cert_chain(settings.cert_file, settings.key_file or None)
    except (OSError, ssl.SSLError) as e:
        raise ConfigurationError(f"Invalid client TLS settings: {e}") from e
    if settings.ignore_certificate_errors:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        log.debug("Client TLS certificate verification is disabled.")
    return context


def build_server_context(settings: TlsSettings) -> ssl.SSLContext | None:
    """
    Returns a server context for the peer-cache service, or None for plain HTTP.
    """
    if not settings.cert_file:
        return None
    try:
        context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        context.load_cert_chain(settings.cert_file, settings.key_file or None)
        if settings.ca_file:
            context.load_verify_locations(settings.ca_file)
            context.verify_mode = ssl.CERT_REQUIRED
    except (OSError, ssl.SSLError) as e:
        raise ConfigurationError(f"Invalid server TLS settings: {e}") from e
    return context
