"""
Raw SQL expressions for use in queries without parameter binding
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Expression:
    """
    Trusted SQL fragment emitted verbatim into a statement.

    Values wrapped in an Expression are never bound as parameters, so
    they must come from the application, never from user input.

    Example:
        db.update('users', {'last_seen': Expression('NOW()')}, {'id': 7})
    """

    value: str

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        # the fragment itself stays out of reprs that end up in logs
        return 'Expression(<raw sql>)'
