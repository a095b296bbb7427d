"""
Transports for atsbridge.

    transport/
    ├── base.py   # Transport protocol, httpx client ownership, error translation
    ├── rest.py   # RestTransport
    └── soap.py   # SoapTransport + EnvelopeCodec
"""

from atsbridge.transport.base import HttpxTransport, Transport, translate_errors
from atsbridge.transport.rest import RestTransport
from atsbridge.transport.soap import EnvelopeCodec, SoapTransport

__all__ = [
    "EnvelopeCodec",
    "HttpxTransport",
    "RestTransport",
    "SoapTransport",
    "Transport",
    "translate_errors",
]
