"""IDL configuration file tools, gRPC message framing, request layers and a client builder."""

__version__ = "0.1.0"