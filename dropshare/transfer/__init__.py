"""
Transfer Module - HTTP Exchange

Handles the single download or upload over a hand-framed HTTP/1.1 subset.
"""

from .protocol import RequestKind, RequestHeaders, ResponseHeaders, classify_request_line
from .multipart import MultipartIngestor, MultipartUpload, BOUNDARY_OVERHEAD, payload_length
from .handler import RequestHandler, HandlerState, ExchangeResult

__all__ = [
    'RequestKind',
    'RequestHeaders',
    'ResponseHeaders',
    'classify_request_line',
    'MultipartIngestor',
    'MultipartUpload',
    'BOUNDARY_OVERHEAD',
    'payload_length',
    'RequestHandler',
    'HandlerState',
    'ExchangeResult',
]
