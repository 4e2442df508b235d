"""Coin ledger and monetization services"""
from .ledger_service import LedgerService, UpdatedBalance, PurchaseResult
from .message_service import MessageService, SendResult

__all__ = ['LedgerService', 'UpdatedBalance', 'PurchaseResult', 'MessageService', 'SendResult']
