"""Core layer package."""

from .program import Program, Script
from .imports import ImportReplacer
from .deployment import Contract, Deployment
from .transaction import Transaction
from .gateway import Gateway

__all__ = ["Program", "Script", "ImportReplacer", "Contract", "Deployment", "Transaction", "Gateway"]
