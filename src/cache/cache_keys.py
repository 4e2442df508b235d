# coding: utf-8
"""
Cache key generation

Key format: {entity}:{id}[:{more}]

Examples:
    user:42
    messages:7
    performers:20:0
"""


class CacheKeys:
    """
    Builders for every cache key used by the services. Each key has a
    documented invalidation site:

    - user:<id>            LedgerService.commit (any credit/debit), profile edits
    - conversation:<id>    conversation creation
    - messages:<conv_id>   new message, read-mark
    - performers:*         performer profile/price edits, role changes
    """

    SEPARATOR = ":"

    @classmethod
    def user(cls, user_id: int) -> str:
        return f"user{cls.SEPARATOR}{user_id}"

    @classmethod
    def conversation(cls, conversation_id: int) -> str:
        return f"conversation{cls.SEPARATOR}{conversation_id}"

    @classmethod
    def messages(cls, conversation_id: int) -> str:
        return f"messages{cls.SEPARATOR}{conversation_id}"

    @classmethod
    def performers(cls, limit: int, offset: int) -> str:
        return f"performers{cls.SEPARATOR}{limit}{cls.SEPARATOR}{offset}"

    @classmethod
    def performers_pattern(cls) -> str:
        return f"performers{cls.SEPARATOR}*"
