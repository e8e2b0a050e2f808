from .metadata import MetadataClientPort
from .stream_provider import StreamProviderPort
from .token_generator import TokenGeneratorPort

__all__ = [
    "MetadataClientPort",
    "StreamProviderPort",
    "TokenGeneratorPort",
]
