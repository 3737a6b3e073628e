from .base import ManagedProcess
from .file_server import FileServerProcess
from .tunnel import TunnelProcess, extract_tunnel_url

__all__ = ["ManagedProcess", "FileServerProcess", "TunnelProcess", "extract_tunnel_url"]
