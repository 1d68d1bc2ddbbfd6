"""
Flowkit - Gateway Interface

Access node operations the engine depends on. Implementations must be
safe for concurrent use.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from ..cadence import Value
from ..models import Address, Block, BlockEvents, Collection, FlowAccount, Identifier, TransactionResult


class Gateway(ABC):
    """
    Abstract base class for access node clients.

    ``get_transaction_result`` with ``wait_seal=True`` must not return
    before the node reports the transaction sealed.
    """

    @abstractmethod
    def ping(self) -> None:
        """
        Check that the node is reachable.

        Raises:
            NetworkError: If it is not.
        """
        pass

    @abstractmethod
    def get_account(self, address: Address) -> FlowAccount:
        pass

    @abstractmethod
    def get_latest_block(self) -> Block:
        pass

    @abstractmethod
    def get_block_by_height(self, height: int) -> Block:
        pass

    @abstractmethod
    def get_block_by_id(self, block_id: Identifier) -> Block:
        pass

    @abstractmethod
    def get_collection(self, collection_id: Identifier) -> Collection:
        pass

    @abstractmethod
    def get_events(self, event_type: str, start_height: int, end_height: int) -> List[BlockEvents]:
        """Events of one type in the inclusive height range."""
        pass

    @abstractmethod
    def get_transaction(self, txid: Identifier):
        pass

    @abstractmethod
    def get_transaction_result(self, txid: Identifier, wait_seal: bool = False) -> TransactionResult:
        pass

    @abstractmethod
    def get_transactions_by_block_id(self, block_id: Identifier) -> list:
        pass

    @abstractmethod
    def get_transaction_results_by_block_id(self, block_id: Identifier) -> List[TransactionResult]:
        pass

    @abstractmethod
    def get_system_transaction(self, block_id: Identifier) -> Tuple[object, TransactionResult]:
        pass

    @abstractmethod
    def send_signed_transaction(self, tx) -> Identifier:
        """Submit a signed transaction without waiting for its result."""
        pass

    @abstractmethod
    def execute_script(self, code: bytes, args: List[Value]) -> Value:
        pass

    @abstractmethod
    def execute_script_at_height(self, code: bytes, args: List[Value], height: int) -> Value:
        pass

    @abstractmethod
    def execute_script_at_id(self, code: bytes, args: List[Value], block_id: Identifier) -> Value:
        pass

    @abstractmethod
    def get_latest_protocol_state_snapshot(self) -> bytes:
        pass

    def secure_connection(self) -> bool:
        return False

    def close(self) -> None:
        pass


def block_query(value: Optional[str]):
    """
    Parse a block query: ``latest``, a height or a block id.

    Returns:
        ("latest", None), ("height", int) or ("id", Identifier).
    """
    if isinstance(value, int):
        return "height", value
    if value is None or value == "" or value == "latest":
        return "latest", None
    if value.isdigit():
        return "height", int(value)
    return "id", Identifier.from_hex(value)
