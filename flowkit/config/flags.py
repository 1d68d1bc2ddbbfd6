"""
Flowkit - Command Flags

Options a command layer parses and hands to the engine.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from ..constants import EMULATOR, GRPC_TRANSPORT
from .loader import default_paths


@dataclass
class Flags:
    """
    Global options shared by all commands.

    Built by the command layer and passed explicitly; the engine keeps
    no module-level option state.
    """
    filter: str = ""
    format: str = ""
    save: str = ""
    host: str = ""
    host_network_key: str = ""
    network: str = EMULATOR
    log: str = "info"
    yes: bool = False
    config_paths: List[str] = field(default_factory=default_paths)
    skip_version_check: bool = False
    transport: str = GRPC_TRANSPORT

    def has_custom_host(self) -> bool:
        return bool(self.host)

    def network_key(self) -> Optional[str]:
        return self.host_network_key or None
