"""gitgate - self-hosted Git Smart HTTP server"""

__version__ = "0.1.0"
