"""
Network clients for the Timelock SDK.

``Web3NetworkClient`` talks to a real EVM node; ``SimulatedNetwork`` is an
in-memory chain with the same interface for tests and dry runs.
"""
from .base import FeeMarket, NetworkClient, RegistryState, SubmissionHandle
from .simulated import SimulatedNetwork
from .web3_client import Signer, Web3NetworkClient

__all__ = [
    'FeeMarket',
    'NetworkClient',
    'RegistryState',
    'SubmissionHandle',
    'SimulatedNetwork',
    'Signer',
    'Web3NetworkClient',
]
