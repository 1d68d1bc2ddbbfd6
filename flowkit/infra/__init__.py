"""Infrastructure layer package."""

from .crypto import PrivateKey
from .files import FileSystem, ReaderWriter
from .kms import KMSSigner
from .api import HttpGateway
from .rpc import GrpcGateway

__all__ = ["PrivateKey", "FileSystem", "ReaderWriter", "KMSSigner", "HttpGateway", "GrpcGateway"]
