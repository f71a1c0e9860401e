"""gatedjac Codecs: checkpoint persistence."""

from .jacobian import JacobianCodec

__all__ = ["JacobianCodec"]
